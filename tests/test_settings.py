import pytest
from pydantic import ValidationError

from config.settings import MonitoringSettings, ServerSettings, Settings, WhoisSettings


def test_whois_key_aliases(monkeypatch):
    monkeypatch.delenv("WHOIS_API_KEY", raising=False)
    monkeypatch.setenv("API_LAYER_KEY", "layer-key")

    assert WhoisSettings().api_key.get_secret_value() == "layer-key"


def test_ip_tags_from_json_env(monkeypatch):
    monkeypatch.setenv("MONITOR_IP_TAGS", '{"198.51.100.7": "Staging"}')

    assert MonitoringSettings().ip_tags == {"198.51.100.7": "Staging"}


def test_port_alias(monkeypatch):
    monkeypatch.setenv("PORT", "9090")

    assert ServerSettings().web_port == 9090


def test_unknown_timezone_rejected():
    with pytest.raises(ValidationError):
        Settings(timezone="Mars/Olympus_Mons")


def test_to_dict_hides_secrets(settings):
    data = settings.to_dict()

    assert "admin_api_token" not in data["server"]
    assert "cron_secret" not in data["server"]
    assert "auth_key" not in data["sms"]
    assert "password" not in data["email"]
    assert data["email"]["host"] == "smtp.test"


def test_production_forces_debug_off():
    assert Settings(environment="production", debug=True).debug is False
