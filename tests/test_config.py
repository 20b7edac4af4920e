from tradebook.config import DEFAULT_DATABASE_URL, get_settings


def test_defaults(monkeypatch):
    for key in ("DATABASE_URL", "DATABASE_ECHO", "IMPORT_BATCH_SIZE", "CORS_ALLOW_ORIGINS", "LOG_LEVEL",
                "TRANSACTIONS_TABLE", "QUERY_PAGE_SIZE", "IMPORT_JOB_TTL_SECONDS", "IMPORT_MAX_UPLOAD_BYTES"):
        monkeypatch.setenv(key, "")
    monkeypatch.setattr("tradebook.config.load_dotenv", lambda: None)

    settings = get_settings()

    assert settings.database_url == DEFAULT_DATABASE_URL
    assert settings.database_echo is False
    assert settings.import_batch_size == 500
    assert settings.import_max_upload_bytes == 200 * 1024 * 1024
    assert settings.query_page_size == 250
    assert settings.transactions_table == "transactions"
    assert settings.cors_allow_origins == ("*",)
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch):
    monkeypatch.setattr("tradebook.config.load_dotenv", lambda: None)
    monkeypatch.setenv("DATABASE_ECHO", "yes")
    monkeypatch.setenv("IMPORT_BATCH_SIZE", "0")
    monkeypatch.setenv("IMPORT_JOB_TTL_SECONDS", "not-a-number")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "http://a.test, http://b.test,")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.database_echo is True
    assert settings.import_batch_size == 1
    assert settings.import_job_ttl_seconds == 3600
    assert settings.cors_allow_origins == ("http://a.test", "http://b.test")
    assert settings.log_level == "DEBUG"
