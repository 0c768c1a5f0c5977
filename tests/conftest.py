# tests/conftest.py
import importlib
import sys
import types
import pytest

from storage.sqlite_store import SQLiteStore

# Try to draw a tiny PNG; if Pillow isn't available, we'll still stub OCR.
try:
    from PIL import Image, ImageDraw

    _PIL = True
except Exception:
    Image = None
    ImageDraw = None
    _PIL = False


RECEIPT_LINES = [
    "Green Leaf Cafe",
    "Veggie Wrap 8.50",
    "Iced Latte 4.25",
    "Subtotal 12.75",
    "Tax 1.02",
    "Total $13.77",
]


@pytest.fixture(scope="session")
def tmp_workspace(tmp_path_factory):
    root = tmp_path_factory.mktemp("et_ws")
    (root / "receipts").mkdir()
    return root


@pytest.fixture(scope="session")
def sample_receipt_txt(tmp_workspace):
    p = tmp_workspace / "receipts" / "cafe.txt"
    p.write_text("\n".join(RECEIPT_LINES) + "\n", encoding="utf-8")
    return p


@pytest.fixture(scope="session")
def sample_receipt_image(tmp_workspace):
    """Tiny PNG for OCR tests. EasyOCR is stubbed, so content can be minimal."""
    img_path = tmp_workspace / "receipts" / "cafe.png"
    if _PIL:
        img = Image.new("RGB", (800, 300), "white")
        d = ImageDraw.Draw(img)
        d.text((20, 20), "\n".join(RECEIPT_LINES), fill="black")
        img.save(img_path)
    else:
        img_path.write_bytes(b"placeholder")
    return img_path


class _FakeEasyOCRReader:
    calls = 0

    def __init__(self, *_, **__):
        pass

    def readtext(self, image, detail=1, paragraph=False):
        type(self).calls += 1
        return [
            ([(0, 10 * i), (100, 10 * i), (100, 10 * i + 8), (0, 10 * i + 8)], t, 0.95)
            for i, t in enumerate(RECEIPT_LINES)
        ]


@pytest.fixture
def fake_easyocr(monkeypatch):
    # Create a fake 'easyocr' module that provides Reader
    fake = types.ModuleType("easyocr")
    fake.Reader = _FakeEasyOCRReader
    _FakeEasyOCRReader.calls = 0
    monkeypatch.setitem(sys.modules, "easyocr", fake)

    # Reload our wrapper so it picks up the fake module no matter how it imports
    import ocr.reader as reader_mod

    importlib.reload(reader_mod)
    return _FakeEasyOCRReader


@pytest.fixture
def store(tmp_path):
    """Fresh SQLite store with the current schema."""
    with SQLiteStore(str(tmp_path / "expenses.sqlite")) as s:
        s.ensure_schema()
        yield s


class FakeChatBackend:
    """Records prompts and answers with canned replies (last one repeats)."""

    def __init__(self, *replies, error=None):
        self.replies = list(replies) or ["ok"]
        self.error = error
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]


@pytest.fixture
def make_backend():
    return FakeChatBackend


@pytest.fixture
def add_expenses(store):
    """Insert (name, amount, category, date) tuples for a user straight into the store."""
    from et_core.models import Expense

    def _add(user_id, rows):
        out = []
        for name, amount, category, when in rows:
            out.append(
                store.insert_expense(
                    Expense(
                        user_id=user_id,
                        name=name,
                        amount=amount,
                        category=category,
                        date=when,
                    )
                )
            )
        return out

    return _add
