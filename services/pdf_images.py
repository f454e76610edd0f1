"""
PDF page rasterization for the OCR providers that only accept images.
"""
import logging
from typing import List, Optional

import fitz  # PyMuPDF

from utils.exceptions import ProviderInputError

logger = logging.getLogger(__name__)

DEFAULT_DPI = 150


def is_pdf(content_type: Optional[str], filename: Optional[str] = None) -> bool:
	if content_type == "application/pdf":
		return True
	return bool(filename) and filename.lower().endswith(".pdf") and not (content_type or "").startswith("image/")


def pdf_to_png_pages(buffer: bytes, dpi: int = DEFAULT_DPI) -> List[bytes]:
	"""
	Render every page of a PDF to PNG bytes, in page order.

	Raises:
		ProviderInputError: If the buffer is not a readable PDF or has no pages
	"""
	try:
		with fitz.open(stream=buffer, filetype="pdf") as doc:
			pages = [page.get_pixmap(dpi=dpi).tobytes("png") for page in doc]
	except Exception as e:
		raise ProviderInputError(f"Failed to convert PDF to images: {e}")
	if not pages:
		raise ProviderInputError("PDF has no pages to convert")
	logger.info("pdf_rasterized", extra={"pages": len(pages), "dpi": dpi})
	return pages
