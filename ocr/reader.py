# ocr/reader.py
from __future__ import annotations
import argparse
import io
import logging
from dataclasses import dataclass
from math import floor
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union, cast

import cv2
import easyocr
import fitz  # PyMuPDF
import numpy as np
from PIL import Image, UnidentifiedImageError

from et_core.errors import ExtractionError

LOGGER = logging.getLogger(__name__)

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".bmp", ".tif", ".tiff", ".webp"}
PDF_EXTS = {".pdf"}
TEXT_EXTS = {".txt"}


@dataclass
class OCRSpan:
    text: str
    confidence: float
    bbox: List[Tuple[float, float]]  # [[x1,y1], [x2,y2], [x3,y3], [x4,y4]]
    page: int

    @property
    def center(self) -> Tuple[float, float]:
        xs = [p[0] for p in self.bbox]
        ys = [p[1] for p in self.bbox]
        return sum(xs) / len(xs), sum(ys) / len(ys)


def _preprocess_strong(np_img: np.ndarray) -> np.ndarray:
    gray = cv2.cvtColor(np_img, cv2.COLOR_RGB2GRAY)
    gray = cv2.bilateralFilter(gray, d=7, sigmaColor=50, sigmaSpace=50)
    clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
    gray = clahe.apply(gray)
    thr = cv2.adaptiveThreshold(
        gray, 255, cv2.ADAPTIVE_THRESH_MEAN_C, cv2.THRESH_BINARY, 31, 10
    )
    return cv2.cvtColor(thr, cv2.COLOR_GRAY2RGB)


def _dedupe_spans(spans: List[OCRSpan]) -> List[OCRSpan]:
    # same text at (roughly) the same place from both passes: keep the surer one
    best = {}
    for s in spans:
        cx, cy = s.center
        key = (s.text.strip().lower(), s.page, floor(cx / 10), floor(cy / 10))
        if key not in best or s.confidence > best[key].confidence:
            best[key] = s
    return list(best.values())


class Reader:
    """
    Receipt text extractor.

    Images are OCR'd twice (raw RGB and a contrast-boosted variant) and the
    spans merged. PDFs use their embedded text layer when there is one and
    are rendered + OCR'd page by page otherwise. The EasyOCR model is only
    loaded the first time it is needed.
    """

    def __init__(
        self,
        languages: Optional[List[str]] = None,
        gpu: bool = False,
        min_confidence: float = 0.45,  # slightly lower to catch faint decimals
        paragraph: bool = False,  # keep rows separate for receipts
        dpi: int = 200,
    ):
        self.languages = languages or ["en"]
        self.gpu = bool(gpu)
        self.min_confidence = float(min_confidence)
        self.paragraph = bool(paragraph)
        self.dpi = int(dpi)
        self._reader = None

    @classmethod
    def from_config(cls, cfg: dict) -> "Reader":
        ocr = cfg.get("ocr", {})
        return cls(
            languages=ocr.get("languages"),
            gpu=ocr.get("gpu", False),
            min_confidence=ocr.get("min_confidence", 0.45),
            paragraph=ocr.get("paragraph", False),
            dpi=ocr.get("dpi", 200),
        )

    @property
    def engine(self):
        if self._reader is None:
            LOGGER.debug("Loading EasyOCR model for %s", self.languages)
            self._reader = easyocr.Reader(self.languages, gpu=self.gpu, verbose=False)
        return self._reader

    # ------------------------------------------------------------------ text

    def extract_text(self, path: Union[str, Path]) -> str:
        """Return the plain text of an image, PDF or .txt file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Input not found: {path}")
        ext = path.suffix.lower()
        if ext in TEXT_EXTS:
            return path.read_text(encoding="utf-8", errors="ignore")
        if ext in IMAGE_EXTS:
            return self.to_plaintext(self.read_image(path))
        if ext in PDF_EXTS:
            return self.read_pdf_text(path)
        raise ValueError(f"Unsupported file type: {ext}")

    def extract_bytes(self, data: bytes, kind: str) -> str:
        """
        Same as extract_text for an in-memory upload. `kind` is a file
        extension (".png", "pdf", ...) or a MIME type ("image/png").
        """
        kind = (kind or "").lower()
        if kind == "application/pdf" or kind.lstrip(".") == "pdf":
            try:
                doc = fitz.open(stream=data, filetype="pdf")
            except Exception as e:
                raise ExtractionError("Cannot open uploaded PDF") from e
            return self._pdf_text(doc)
        if kind.startswith("image/") or f".{kind.lstrip('.')}" in IMAGE_EXTS:
            try:
                img = Image.open(io.BytesIO(data)).convert("RGB")
            except UnidentifiedImageError as e:
                raise ExtractionError("Cannot open uploaded image") from e
            return self.to_plaintext(self._read_np(np.array(img), page=1))
        if kind.lstrip(".") == "txt" or kind.startswith("text/"):
            return data.decode("utf-8", errors="ignore")
        raise ValueError(f"Unsupported upload type: {kind or '(none)'}")

    def read_pdf_text(self, pdf_path: Union[str, Path]) -> str:
        try:
            doc = fitz.open(Path(pdf_path))
        except Exception as e:
            raise ExtractionError(f"Cannot open PDF: {pdf_path}") from e
        return self._pdf_text(doc)

    def _pdf_text(self, doc) -> str:
        with doc:
            layer = "\n".join(doc.load_page(i).get_text() for i in range(doc.page_count))
            if layer.strip():
                return layer.strip()
            LOGGER.info("PDF has no text layer; rendering %d page(s) for OCR", doc.page_count)
            return self.to_plaintext(self._ocr_pdf_pages(doc))

    # ----------------------------------------------------------------- spans

    def read_image(self, image_path: Union[str, Path]) -> List[OCRSpan]:
        image_path = Path(image_path)
        try:
            img = Image.open(image_path).convert("RGB")
        except UnidentifiedImageError as e:
            raise ExtractionError(f"Cannot open image: {image_path}") from e
        return self._read_np(np.array(img), page=1)

    def _ocr_pdf_pages(self, doc) -> List[OCRSpan]:
        spans: List[OCRSpan] = []
        zoom = self.dpi / 72.0
        mat = fitz.Matrix(zoom, zoom)
        for i in range(doc.page_count):
            page = cast(Any, doc.load_page(i))
            pix = page.get_pixmap(matrix=mat, alpha=False)
            mode = "RGB" if pix.n < 4 else "RGBA"
            img = Image.frombytes(mode, (pix.width, pix.height), pix.samples)
            if mode == "RGBA":
                img = img.convert("RGB")
            spans.extend(self._read_np(np.array(img), page=i + 1))
        return _dedupe_spans(spans)

    def _read_np(self, np_img: np.ndarray, page: int) -> List[OCRSpan]:
        # Dual-pass OCR: raw RGB and strong-contrast variant
        all_spans: List[OCRSpan] = []
        for npv in (np_img, _preprocess_strong(np_img)):
            all_spans.extend(self._run_easyocr(npv, page=page))
        return _dedupe_spans(all_spans)

    def to_plaintext(self, spans: List[OCRSpan]) -> str:
        """One span per line, top-to-bottom then left-to-right within a page."""
        if not spans:
            return ""
        ordered = sorted(
            spans, key=lambda s: (s.page, round(s.center[1] / 10), s.center[0])
        )
        return "\n".join(s.text for s in ordered if s.text).strip()

    def _run_easyocr(self, np_img: np.ndarray, page: int) -> List[OCRSpan]:
        try:
            results = self.engine.readtext(np_img, detail=1, paragraph=self.paragraph)
        except Exception as e:
            raise ExtractionError(f"OCR engine failed on page {page}: {e}") from e
        spans: List[OCRSpan] = []
        for item in results:
            if isinstance(item, (list, tuple)):
                if len(item) == 3:
                    bbox, text, conf = item
                elif len(item) == 2:
                    bbox, text = item
                    conf = 1.0
                else:
                    continue
            elif isinstance(item, dict):
                bbox = item.get("box") or item.get("bbox")
                text = item.get("text")
                conf = item.get("confidence") or item.get("conf") or 1.0
            else:
                continue

            if not text or bbox is None:
                continue
            try:
                conf_f = float(conf)
            except (TypeError, ValueError):
                conf_f = 1.0
            if conf_f < self.min_confidence:
                continue

            spans.append(
                OCRSpan(text=text.strip(), confidence=conf_f, bbox=bbox, page=page)
            )
        return spans


def _cli():
    p = argparse.ArgumentParser(description="Extract receipt text from an image or PDF.")
    p.add_argument("--input", required=True)
    p.add_argument("--outdir", default="data/interim/ocr_text")
    p.add_argument("--lang", nargs="+", default=["en"])
    p.add_argument("--gpu", action="store_true")
    p.add_argument("--min_conf", type=float, default=0.45)
    p.add_argument("--paragraph", action="store_true")
    p.add_argument("--dpi", type=int, default=200)
    args = p.parse_args()
    reader = Reader(
        languages=args.lang,
        gpu=args.gpu,
        min_confidence=args.min_conf,
        paragraph=args.paragraph,
        dpi=args.dpi,
    )
    text = reader.extract_text(args.input)
    outdir = Path(args.outdir)
    outdir.mkdir(parents=True, exist_ok=True)
    out_path = outdir / (Path(args.input).stem + ".txt")
    out_path.write_text(text, encoding="utf-8")
    print(f"[OK] OCR complete -> {out_path}")


if __name__ == "__main__":
    _cli()
