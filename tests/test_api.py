import asyncio
import types

import pytest
from fastapi.testclient import TestClient

from resume_mailer import api
from resume_mailer.api import create_app
from resume_mailer.core import MailRelayService
from resume_mailer.dispatcher import NoDelay, RandomDelay
from resume_mailer.errors import TransportError


PDF_BYTES = b"%PDF-1.4\n%test resume\n"


class DummyClient:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []

    async def send_one(self, recipient, subject, html_body, attachment):
        assert attachment.path.exists()
        if recipient in self.failing:
            raise TransportError(recipient, "550 Mailbox not found", 550)
        self.sent.append((recipient, subject, html_body, attachment.filename))


class DummyFactory:
    def __init__(self, client=None, error=None):
        self.client = client or DummyClient()
        self.error = error
        self.calls = []

    def __call__(self, sender_email, credential, **options):
        self.calls.append((sender_email, credential))
        if self.error:
            raise self.error
        return self.client


def form(**overrides):
    data = {
        "senderEmail": "me@gmail.com",
        "appPassword": "app-pass",
        "emails": "a@example.com, b@example.com",
        "name": "Jane Doe",
        "phoneNumber": "0600000000",
        "website": "https://jane.dev",
        "degree": "Data Engineer",
        "customMessage": "<p>Hello</p>",
    }
    for key, value in overrides.items():
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
    return data


def pdf_file(filename="cv.pdf", content_type="application/pdf", content=PDF_BYTES):
    return {"resume": (filename, content, content_type)}


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def client_and_factory(upload_dir):
    factory = DummyFactory()
    svc = MailRelayService(upload_dir=str(upload_dir), delay=NoDelay(), client_factory=factory)
    client = TestClient(create_app(svc))
    return client, factory


def test_status(client_and_factory):
    client, _ = client_and_factory
    assert client.get("/status").json() == {"ok": True}


def test_send_emails_success(client_and_factory, upload_dir):
    client, factory = client_and_factory

    response = client.post("/send-emails", data=form(), files=pdf_file())

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"total", "sent", "failed", "sentEmails"}
    assert body["total"] == 2
    assert body["sent"] == 2
    assert body["failed"] == 0
    assert sorted(body["sentEmails"]) == ["a@example.com", "b@example.com"]
    assert factory.calls == [("me@gmail.com", "app-pass")]
    recipient, subject, html_body, filename = factory.client.sent[0]
    assert subject == "Data Engineer"
    assert "<p>Hello</p>" in html_body
    assert "Jane Doe" in html_body
    assert filename == "cv.pdf"
    assert list(upload_dir.iterdir()) == []


def test_individual_failures_still_return_200(upload_dir):
    factory = DummyFactory(DummyClient(failing={"b@example.com"}))
    svc = MailRelayService(upload_dir=str(upload_dir), delay=NoDelay(), client_factory=factory)
    client = TestClient(create_app(svc))

    response = client.post(
        "/send-emails",
        data=form(emails="a@example.com,b@example.com,c@example.com", batchSize="2"),
        files=pdf_file(),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["sent"] == 2
    assert body["failed"] == 1
    assert "b@example.com" not in body["sentEmails"]
    assert list(upload_dir.iterdir()) == []


def test_batch_pauses_go_through_service_sleep(upload_dir):
    pauses = []

    async def record_sleep(seconds):
        pauses.append(seconds)

    factory = DummyFactory()
    svc = MailRelayService(
        upload_dir=str(upload_dir),
        delay=RandomDelay(180, 300),
        client_factory=factory,
        sleep=record_sleep,
    )
    client = TestClient(create_app(svc))

    response = client.post(
        "/send-emails",
        data=form(emails="a@example.com,b@example.com,c@example.com", batchSize="1"),
        files=pdf_file(),
    )

    assert response.status_code == 200
    assert response.json()["sent"] == 3
    assert len(pauses) == 2
    assert all(180 <= seconds <= 300 for seconds in pauses)


@pytest.mark.parametrize("missing", ["senderEmail", "appPassword", "emails"])
def test_missing_required_field_is_400(client_and_factory, missing):
    client, factory = client_and_factory

    response = client.post("/send-emails", data=form(**{missing: None}), files=pdf_file())

    assert response.status_code == 400
    assert response.json() == {"error": "Missing required fields"}
    assert factory.calls == []


def test_missing_resume_is_400(client_and_factory):
    client, factory = client_and_factory

    response = client.post("/send-emails", data=form())

    assert response.status_code == 400
    assert response.json() == {"error": "Resume PDF is required"}
    assert factory.calls == []


def test_non_pdf_is_400(client_and_factory, upload_dir):
    client, factory = client_and_factory

    response = client.post("/send-emails", data=form(), files=pdf_file("cv.txt", "text/plain", b"hello"))

    assert response.status_code == 400
    assert response.json() == {"error": "Only PDF files are allowed"}
    assert factory.calls == []
    assert not upload_dir.exists()


@pytest.mark.parametrize("batch_size", ["0", "-3", "many"])
def test_invalid_batch_size_is_400(client_and_factory, batch_size):
    client, factory = client_and_factory

    response = client.post("/send-emails", data=form(batchSize=batch_size), files=pdf_file())

    assert response.status_code == 400
    assert response.json() == {"error": "batchSize must be a positive integer"}
    assert factory.calls == []


def test_empty_list_after_trimming(client_and_factory):
    client, factory = client_and_factory

    response = client.post("/send-emails", data=form(emails=" , , "), files=pdf_file())

    assert response.status_code == 200
    assert response.json() == {"total": 0, "sent": 0, "failed": 0, "sentEmails": []}
    assert factory.client.sent == []


def test_unexpected_setup_failure_is_500(upload_dir):
    factory = DummyFactory(error=RuntimeError("smtp exploded"))
    svc = MailRelayService(upload_dir=str(upload_dir), delay=NoDelay(), client_factory=factory)
    client = TestClient(create_app(svc))

    response = client.post("/send-emails", data=form(), files=pdf_file())

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to send emails", "details": "smtp exploded"}
    assert list(upload_dir.iterdir()) == []


def test_uploads_dir_failure_is_500(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file")
    svc = MailRelayService(upload_dir=str(blocker / "uploads"), delay=NoDelay(), client_factory=DummyFactory())
    client = TestClient(create_app(svc))

    response = client.post("/send-emails", data=form(), files=pdf_file())

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to send emails"
    assert "uploads" in body["details"]


def test_metrics_endpoint_reports_sends(client_and_factory):
    client, _ = client_and_factory
    client.post("/send-emails", data=form(), files=pdf_file())
    client.post("/send-emails", data=form(emails=None), files=pdf_file())

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert b"rms_sent_total 2.0" in response.content
    assert b'rms_requests_total{outcome="ok"} 1.0' in response.content
    assert b'rms_requests_total{outcome="rejected"} 1.0' in response.content


def test_cors_headers_present(client_and_factory):
    client, _ = client_and_factory
    response = client.options(
        "/send-emails",
        headers={"Origin": "https://frontend.example", "Access-Control-Request-Method": "POST"},
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] in ("*", "https://frontend.example")


@pytest.mark.asyncio
async def test_watch_disconnect_sets_cancel_event():
    checks = []

    async def is_disconnected():
        checks.append(True)
        return len(checks) >= 2

    request = types.SimpleNamespace(is_disconnected=is_disconnected)
    cancel = asyncio.Event()

    await asyncio.wait_for(api._watch_disconnect(request, cancel, 0.01), timeout=5)

    assert cancel.is_set()
    assert len(checks) == 2
