import pytest


class DummyUpload:
    """Stand-in for ``fastapi.UploadFile`` with the attributes the store reads."""

    def __init__(self, filename="resume.pdf", content_type="application/pdf", data=b"%PDF-1.4 test"):
        self.filename = filename
        self.content_type = content_type
        self._data = data
        self.reads = 0

    async def read(self):
        self.reads += 1
        return self._data


@pytest.fixture
def pdf_upload():
    return DummyUpload()


@pytest.fixture
def make_upload():
    return DummyUpload
