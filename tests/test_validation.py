import pytest

from supamind.validation import (
    is_valid_file_path,
    is_valid_http_url,
    is_valid_message_length,
    is_valid_url,
    is_valid_uuid,
    sanitize_string,
    validate_audio_overview,
    validate_chat_message,
    validate_document_processing,
    validate_url_list,
)

USER_ID = "3f2b8c1e-5d4a-4b6c-9e8f-0a1b2c3d4e5f"
SOURCE_ID = "9a8b7c6d-5e4f-4a3b-8c2d-1e0f9a8b7c6d"


@pytest.mark.parametrize(
    "value, expected",
    [
        (USER_ID, True),
        (USER_ID.upper(), True),
        ("3f2b8c1e-5d4a-1b6c-9e8f-0a1b2c3d4e5f", False),  # version 1
        ("3f2b8c1e-5d4a-4b6c-7e8f-0a1b2c3d4e5f", False),  # bad variant
        ("not-a-uuid", False),
        (None, False),
        (42, False),
    ],
)
def test_is_valid_uuid(value, expected):
    assert is_valid_uuid(value) is expected


def test_url_checks():
    assert is_valid_url("https://example.com/a") is True
    assert is_valid_url("ftp://example.com") is False
    assert is_valid_url("example.com") is False
    assert is_valid_http_url("https://example.com") is True
    assert is_valid_http_url("http://localhost:3000") is False
    assert is_valid_http_url("http://127.0.0.1/admin") is False


@pytest.mark.parametrize(
    "path, expected",
    [
        ("user/notebook/file.pdf", True),
        ("file_1-a.txt", True),
        ("../etc/passwd.txt", False),
        ("/abs/file.pdf", False),
        ("dir\\file.pdf", False),
        ("no-extension", False),
        ("", False),
    ],
)
def test_is_valid_file_path(path, expected):
    assert is_valid_file_path(path) is expected


def test_sanitize_string_trims_and_truncates():
    assert sanitize_string("  hello  ") == "hello"
    assert sanitize_string("abcdef", max_length=3) == "abc"
    assert sanitize_string(None) == ""
    assert sanitize_string(12) == ""


def test_message_length_bounds():
    assert is_valid_message_length("x") is True
    assert is_valid_message_length("") is False
    assert is_valid_message_length("x" * 50000) is True
    assert is_valid_message_length("x" * 50001) is False


def test_validate_chat_message_collects_every_error():
    result = validate_chat_message({"session_id": "bad", "message": ""})

    assert result.valid is False
    assert len(result.errors) == 3
    assert any("session_id" in error for error in result.errors)
    assert any("user_id" in error for error in result.errors)


def test_validate_document_processing():
    payload = {"sourceId": SOURCE_ID, "userId": USER_ID, "filePath": "u/doc.pdf", "sourceType": "pdf"}
    assert validate_document_processing(payload).valid

    invalid = validate_document_processing({**payload, "sourceType": "exe", "notebookId": "nope"})
    assert invalid.errors == [
        "Invalid sourceType: must be one of: pdf, text, website, youtube, audio, podcast",
        "Invalid notebookId: must be a valid UUID if provided",
    ]


def test_validate_audio_overview():
    assert validate_audio_overview({"notebook_id": SOURCE_ID, "user_id": USER_ID}).valid
    assert not validate_audio_overview({"notebook_id": SOURCE_ID}).valid


def test_validate_url_list():
    assert validate_url_list(["https://a.example", "https://b.example"]).valid
    assert validate_url_list("https://a.example").errors == ["urls must be an array"]
    assert validate_url_list([]).errors == ["urls array cannot be empty"]
    assert len(validate_url_list(["https://a.example"] * 51).errors) == 1
    assert validate_url_list(["http://localhost"]).errors == ["Invalid URL at index 0: http://localhost"]
