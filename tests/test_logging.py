from strata.core.logging import AsyncLogger, SensitiveDataMasker


def test_mask_hides_credentials_in_free_text():
    masker = SensitiveDataMasker()
    text = "GET https://config.internal/v1?token=abc123def456&dc=eu failed, password=hunter22"
    masked = masker.mask(text)
    assert "abc123def456" not in masked
    assert "hunter22" not in masked
    assert "token=***&dc=eu" in masked
    assert "password=***" in masked


def test_mask_leaves_short_and_unrelated_values():
    masker = SensitiveDataMasker()
    assert masker.mask("port=8080 key=ab") == "port=8080 key=ab"


def test_mask_settings_only_touches_sensitive_leaves():
    masker = SensitiveDataMasker()
    settings = {"redis": {"password": "hunter2", "host": "cache"}, "api_key": "", "port": 1}
    assert masker.mask_settings(settings) == {
        "redis": {"password": "***", "host": "cache"},
        "api_key": "",
        "port": 1,
    }


def test_logger_binds_component_and_context(log_records):
    AsyncLogger("strata.test").child("unit").warning("Something happened", key="server.port")
    assert len(log_records) == 1
    record = log_records[0]
    assert record["extra"]["component"] == "strata.test.unit"
    assert record["extra"]["key"] == "server.port"
    assert record["level"].name == "WARNING"
