import base64
import json

import pytest

from course_payments import config
from course_payments.config import Settings, cors_origins
from course_payments.credentials import SCOPES, load_service_account_info, resolve_credentials
from course_payments.errors import ConfigurationError

ENV_VARS = [
    "APP_ENV", "NODE_ENV", "PORT", "RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET",
    "RAZORPAY_WEBHOOK_SECRET", "RAZORPAY_ALLOW_UNSIGNED_WEBHOOKS",
    "GOOGLE_SHEETS_SPREADSHEET_ID", "GOOGLE_SHEET_ID", "GOOGLE_SHEETS_RANGE",
    "GOOGLE_CREDENTIALS_JSON", "GOOGLE_CREDENTIALS_BASE64", "GOOGLE_CREDENTIALS_PATH",
    "GOOGLE_APPLICATION_CREDENTIALS", "BASE_URL", "COURSE_FEE_MINOR_UNITS",
    "CORS_ALLOWED_ORIGINS", "ALLOW_DEBUG_ENV",
]

SERVICE_ACCOUNT = {"type": "service_account", "client_email": "svc@example.iam.gserviceaccount.com"}


@pytest.fixture
def env(monkeypatch, mocker):
    mocker.patch.object(config, "load_dotenv")
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("RAZORPAY_KEY_ID", "rzp_test_key")
    monkeypatch.setenv("RAZORPAY_KEY_SECRET", "secret")
    monkeypatch.setenv("GOOGLE_SHEET_ID", "sheet-123")
    return monkeypatch


def test_from_env_defaults(env):
    settings = Settings.from_env()

    assert settings.spreadsheet_id == "sheet-123"
    assert settings.sheet_range == "Sheet1!A1"
    assert settings.environment == "development"
    assert settings.razorpay_webhook_secret is None
    assert settings.allow_unsigned_webhooks is True
    assert settings.course_fee == 100
    assert settings.callback_url == "http://localhost:5001/api/payment/verify-payment"


def test_production_disallows_unsigned_webhooks_by_default(env):
    env.setenv("APP_ENV", "production")

    settings = Settings.from_env()

    assert settings.is_production
    assert settings.allow_unsigned_webhooks is False


def test_unsigned_webhooks_can_be_opted_into(env):
    env.setenv("APP_ENV", "production")
    env.setenv("RAZORPAY_ALLOW_UNSIGNED_WEBHOOKS", "true")

    assert Settings.from_env().allow_unsigned_webhooks is True


@pytest.mark.parametrize("missing", ["RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET", "GOOGLE_SHEET_ID"])
def test_from_env_requires_values(env, missing):
    env.delenv(missing)

    with pytest.raises(ConfigurationError):
        Settings.from_env()


def test_cors_origins_from_env(env):
    env.setenv("CORS_ALLOWED_ORIGINS", "https://a.test, https://b.test,")

    assert cors_origins() == ["https://a.test", "https://b.test"]


def test_inline_credentials_win(env):
    env.setenv("GOOGLE_CREDENTIALS_JSON", json.dumps(SERVICE_ACCOUNT))
    env.setenv("GOOGLE_CREDENTIALS_BASE64", "ignored")

    source, info = load_service_account_info(Settings.from_env())

    assert source == "inline"
    assert info == SERVICE_ACCOUNT


def test_base64_credentials(env):
    encoded = base64.b64encode(json.dumps(SERVICE_ACCOUNT).encode()).decode()
    env.setenv("GOOGLE_CREDENTIALS_BASE64", encoded)

    assert load_service_account_info(Settings.from_env()) == ("base64", SERVICE_ACCOUNT)


@pytest.mark.parametrize("name,value", [
    ("GOOGLE_CREDENTIALS_JSON", "{not json"),
    ("GOOGLE_CREDENTIALS_BASE64", "%%%"),
])
def test_invalid_inline_credentials(env, name, value):
    env.setenv(name, value)

    with pytest.raises(ConfigurationError):
        load_service_account_info(Settings.from_env())


def test_missing_credentials_file(env, tmp_path):
    env.setenv("GOOGLE_CREDENTIALS_PATH", str(tmp_path / "missing.json"))

    with pytest.raises(ConfigurationError):
        load_service_account_info(Settings.from_env())


def test_resolve_credentials_from_file(env, tmp_path, mocker):
    key_file = tmp_path / "key.json"
    key_file.write_text(json.dumps(SERVICE_ACCOUNT))
    env.setenv("GOOGLE_CREDENTIALS_PATH", str(key_file))
    from_file = mocker.patch(
        "course_payments.credentials.service_account.Credentials.from_service_account_file"
    )

    credentials = resolve_credentials(Settings.from_env())

    assert credentials is from_file.return_value
    from_file.assert_called_once_with(str(key_file), scopes=SCOPES)


def test_resolve_credentials_from_info(env, mocker):
    env.setenv("GOOGLE_CREDENTIALS_JSON", json.dumps(SERVICE_ACCOUNT))
    from_info = mocker.patch(
        "course_payments.credentials.service_account.Credentials.from_service_account_info"
    )

    resolve_credentials(Settings.from_env())

    from_info.assert_called_once_with(SERVICE_ACCOUNT, scopes=SCOPES)
