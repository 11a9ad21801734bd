"""Serverless function layer for the Supamind content workspace."""
