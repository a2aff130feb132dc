import smtplib

from cvintelligence.services import email as email_module
from cvintelligence.services.email import EmailService
from cvintelligence.services.settings_store import SettingsStore

SMTP_SETTINGS = {
    "EMAIL_SMTP_HOST": "smtp.empresa.com.br",
    "EMAIL_SMTP_PORT": "587",
    "EMAIL_SMTP_USER": "mailer",
    "EMAIL_SMTP_PASSWORD": "pw",
    "EMAIL_FROM_ADDRESS": "no-reply@empresa.com.br",
}


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.messages = []
        self.logged_in = None
        self.tls = False
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, message):
        self.messages.append(message)


async def test_send_without_configuration_returns_false(db, monkeypatch):
    def unexpected(*args, **kwargs):
        raise AssertionError("SMTP should not be contacted")

    monkeypatch.setattr(smtplib, "SMTP", unexpected)

    assert await EmailService(SettingsStore(db)).send("ana@empresa.com.br", "Oi", "<p>oi</p>") is False


async def test_send_uses_current_settings(db, monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(email_module.smtplib, "SMTP", FakeSMTP)
    store = SettingsStore(db)
    await store.set_many(SMTP_SETTINGS)

    assert await EmailService(store).send_welcome("ana@empresa.com.br", "Ana <b>") is True

    server = FakeSMTP.instances[0]
    assert (server.host, server.port) == ("smtp.empresa.com.br", 587)
    assert server.tls is True
    assert server.logged_in == ("mailer", "pw")
    message = server.messages[0]
    assert message["To"] == "ana@empresa.com.br"
    assert "no-reply@empresa.com.br" in message["From"]
    html_part = message.get_body(preferencelist=("html",)).get_content()
    assert "Ana &lt;b&gt;" in html_part

    # Settings changed from the admin panel apply to the next send
    await store.set("EMAIL_SMTP_HOST", "smtp2.empresa.com.br")
    await EmailService(store).send_test("ops@empresa.com.br")
    assert FakeSMTP.instances[1].host == "smtp2.empresa.com.br"


async def test_send_uses_ssl_on_port_465(db, monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(email_module.smtplib, "SMTP_SSL", FakeSMTP)
    store = SettingsStore(db)
    await store.set_many({**SMTP_SETTINGS, "EMAIL_SMTP_PORT": "465"})

    assert await EmailService(store).send_test("ops@empresa.com.br") is True
    assert FakeSMTP.instances[0].tls is False


async def test_send_swallows_delivery_errors(db, monkeypatch):
    class BrokenSMTP(FakeSMTP):
        def login(self, user, password):
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    monkeypatch.setattr(email_module.smtplib, "SMTP", BrokenSMTP)
    store = SettingsStore(db)
    await store.set_many(SMTP_SETTINGS)

    assert await EmailService(store).send_test("ops@empresa.com.br") is False


async def test_send_rejects_invalid_port(db):
    store = SettingsStore(db)
    await store.set_many({**SMTP_SETTINGS, "EMAIL_SMTP_PORT": "smtp"})

    assert await EmailService(store).send_test("ops@empresa.com.br") is False


async def test_sendgrid_takes_precedence(db, monkeypatch):
    sent = []

    class FakeSendGrid:
        def __init__(self, api_key):
            self.api_key = api_key

        def send(self, message):
            sent.append((self.api_key, message))

    monkeypatch.setattr(email_module.sendgrid, "SendGridAPIClient", FakeSendGrid)
    store = SettingsStore(db)
    await store.set_many({"SENDGRID_API_KEY": "SG.key", "EMAIL_FROM_ADDRESS": "no-reply@empresa.com.br"})

    assert await EmailService(store).send_test("ops@empresa.com.br") is True
    assert sent[0][0] == "SG.key"


async def test_send_with_malformed_from_address_returns_false(db, monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(email_module.smtplib, "SMTP", FakeSMTP)
    store = SettingsStore(db)
    await store.set_many({**SMTP_SETTINGS, "EMAIL_FROM_ADDRESS": "no-reply@empresa.com.br\n"})

    assert await EmailService(store).send_test("ops@empresa.com.br") is False
    assert FakeSMTP.instances == []


async def test_send_with_non_ascii_password_returns_false(db, monkeypatch):
    class AsciiOnlySMTP(FakeSMTP):
        def login(self, user, password):
            password.encode("ascii")

    monkeypatch.setattr(email_module.smtplib, "SMTP", AsciiOnlySMTP)
    store = SettingsStore(db)
    await store.set_many({**SMTP_SETTINGS, "EMAIL_SMTP_PASSWORD": "senhaçã"})

    assert await EmailService(store).send_test("ops@empresa.com.br") is False


async def test_admin_test_email_with_malformed_settings(admin_client):
    await admin_client.post("/api/admin/settings", json={
        **SMTP_SETTINGS,
        "EMAIL_FROM_ADDRESS": "no-reply@empresa.com.br\r\n",
    })

    response = await admin_client.post("/api/admin/test-email", json={"to": "ops@empresa.com.br"})

    assert response.status_code == 200
    assert response.json() == {"sent": False}
