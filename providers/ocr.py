"""
OCR providers and the router that dispatches to them.

Every provider shares the same policy, implemented once in
OCRProvider.process():

- no credentials configured: demo-mode text carrying DEMO_MARKER, confidence 0
- empty buffer: credentials self-test, confidence 100
- size ceiling / image-only constraints: ProviderInputError before any network call
- upstream failures: ProviderError with the upstream message, never retried
"""
import base64
import io
import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from models.provider import HealthCheckResult, OCRMetadata, OCRResult
from providers.registry import get_ocr_provider, register_ocr_provider
from services.pdf_images import is_pdf, pdf_to_png_pages
from services.provider_health import DEGRADED, DOWN, HEALTHY
from utils.exceptions import ProviderError, ProviderInputError

logger = logging.getLogger("providers.ocr")

DEMO_MARKER = "[DEMO MODE]"
PAGE_BREAK = "\n\n--- Page Break ---\n\n"
VISION_PROMPT = (
	"Please extract all text from this image. Return only the extracted text, maintaining the "
	"original layout and structure as much as possible. Include all visible text, numbers, and "
	"any other readable content."
)
PDF_CAPABLE = "Google Vision, AWS Textract, or Azure Document Intelligence"


def _b64(buffer: bytes) -> str:
	return base64.b64encode(buffer).decode("ascii")


def _post(url: str, provider: str, **kwargs) -> Dict[str, Any]:
	try:
		response = requests.post(url, **kwargs)
	except requests.RequestException as e:
		raise ProviderError(f"{provider} request failed: {e}", provider=provider)
	if not response.ok:
		raise ProviderError(
			f"{provider} API error: {response.reason} - {response.text[:200]}",
			provider=provider,
			status=response.status_code,
		)
	try:
		return response.json()
	except ValueError:
		raise ProviderError(f"{provider}: Invalid JSON response from API", provider=provider, status=response.status_code)


class OCRProvider(ABC):
	name = ""
	label = ""
	image_only = False
	max_size_kb: Optional[int] = None
	demo_text = ""

	@abstractmethod
	def credentials(self) -> Optional[Dict[str, str]]:
		"""Return the provider credentials, or None when not configured."""

	@abstractmethod
	def extract(self, buffer: bytes, content_type: str, creds: Dict[str, str], options: Dict[str, Any]) -> OCRResult:
		pass

	def result(self, text: str, confidence: float, pages: int = 1, language: Optional[str] = None) -> OCRResult:
		return OCRResult(
			text=text,
			metadata=OCRMetadata(provider=self.name, confidence=confidence, pages=pages, language=language),
		)

	def process(self, buffer: bytes, content_type: str = "application/pdf", options: Optional[Dict[str, Any]] = None) -> OCRResult:
		creds = self.credentials()
		if not creds:
			return self.result(f"{DEMO_MARKER} {self.demo_text}", confidence=0)

		if len(buffer) == 0:
			return self.result(
				f"{self.label} API test successful! API key is configured and ready to process documents.",
				confidence=100,
			)

		if self.max_size_kb is not None:
			size_kb = len(buffer) / 1024
			if size_kb > self.max_size_kb:
				raise ProviderInputError(
					f"File size ({round(size_kb)} KB) exceeds {self.label} limit of {self.max_size_kb} KB. "
					f"Please use a different OCR provider ({PDF_CAPABLE}) or reduce the file size by:\n"
					"1. Compressing the PDF\n"
					"2. Reducing image quality/resolution\n"
					"3. Converting multi-page PDFs to single pages\n"
					"4. Using a smaller document"
				)

		if self.image_only and not (content_type or "").startswith("image/"):
			raise ProviderInputError(
				f"{self.label} only supports image formats (PNG, JPG, WebP), not PDFs. "
				f"To use {self.label} for OCR, convert your PDF to images first (one image per page), "
				f"or use a different OCR provider like {PDF_CAPABLE} which support PDF directly."
			)

		return self.extract(buffer, content_type, creds, options or {})


@register_ocr_provider
class GoogleVisionProvider(OCRProvider):
	name = "google-vision"
	label = "Google Vision"
	demo_text = (
		"Google Vision API key not configured. In production with a valid API key, this would contain "
		"actual OCR text extracted from your document using Google Cloud Vision."
	)

	def credentials(self):
		key = os.getenv("GOOGLE_VISION_API_KEY")
		return {"api_key": key} if key else None

	def extract(self, buffer, content_type, creds, options):
		result = _post(
			f"https://vision.googleapis.com/v1/images:annotate?key={creds['api_key']}",
			self.label,
			json={
				"requests": [{
					"image": {"content": _b64(buffer)},
					"features": [{"type": "DOCUMENT_TEXT_DETECTION"}],
				}]
			},
		)
		first = (result.get("responses") or [{}])[0]
		if first.get("error"):
			raise ProviderError(f"Google Vision API error: {first['error'].get('message')}", provider=self.name)
		annotation = first.get("fullTextAnnotation") or {}
		if not annotation.get("text"):
			raise ProviderError("No text found in the document", provider=self.name)
		pages = annotation.get("pages") or []
		languages = (pages[0].get("property") or {}).get("detectedLanguages", []) if pages else []
		return self.result(
			annotation["text"],
			confidence=round((pages[0].get("confidence") or 0) * 100, 2) if pages else 0,
			pages=len(pages) or 1,
			language=languages[0].get("languageCode") if languages else "unknown",
		)


class _ChatVisionProvider(OCRProvider):
	"""Vision chat-completion APIs that read one image per request."""
	image_only = True
	endpoint = ""
	default_model = ""
	confidence = 90

	def image_part(self, data_url: str) -> Dict[str, Any]:
		return {"type": "image_url", "image_url": data_url}

	def extract(self, buffer, content_type, creds, options):
		data_url = f"data:{content_type};base64,{_b64(buffer)}"
		result = _post(
			self.endpoint,
			self.label,
			headers={"Authorization": f"Bearer {creds['api_key']}"},
			json={
				"model": options.get("model") or self.default_model,
				"messages": [{
					"role": "user",
					"content": [{"type": "text", "text": VISION_PROMPT}, self.image_part(data_url)],
				}],
				"temperature": 0,
				"max_tokens": 4096,
			},
		)
		text = ((result.get("choices") or [{}])[0].get("message") or {}).get("content") or ""
		if not text:
			raise ProviderError(f"{self.label}: No text extracted from image", provider=self.name)
		return self.result(text, confidence=self.confidence, pages=1, language="auto-detected")


@register_ocr_provider
class OpenAIVisionProvider(_ChatVisionProvider):
	name = "openai-vision"
	label = "OpenAI Vision"
	endpoint = "https://api.openai.com/v1/chat/completions"
	default_model = "gpt-4o-mini"
	confidence = 95
	demo_text = (
		"OpenAI API key not configured. In production with a valid API key, this would contain "
		"actual OCR text extracted from your document using GPT-4o Vision."
	)

	def credentials(self):
		key = os.getenv("OPENAI_API_KEY")
		return {"api_key": key} if key else None

	def image_part(self, data_url):
		return {"type": "image_url", "image_url": {"url": data_url, "detail": "high"}}


@register_ocr_provider
class MistralProvider(_ChatVisionProvider):
	name = "mistral"
	label = "Mistral Pixtral"
	endpoint = "https://api.mistral.ai/v1/chat/completions"
	default_model = "pixtral-12b-2409"
	demo_text = (
		"Mistral API key not configured. In production with a valid API key, this would contain "
		"actual OCR text extracted using Mistral's Pixtral vision model."
	)

	def credentials(self):
		key = os.getenv("MISTRAL_API_KEY")
		return {"api_key": key} if key else None


@register_ocr_provider
class AWSTextractProvider(OCRProvider):
	name = "aws-textract"
	label = "AWS Textract"
	demo_text = (
		"AWS credentials not configured. In production with valid AWS credentials, this would contain "
		"actual OCR text extracted using Amazon Textract."
	)

	def credentials(self):
		access_key = os.getenv("AWS_ACCESS_KEY_ID")
		secret_key = os.getenv("AWS_SECRET_ACCESS_KEY")
		if not access_key or not secret_key:
			return None
		return {"access_key": access_key, "secret_key": secret_key, "region": os.getenv("AWS_REGION", "us-east-1")}

	def extract(self, buffer, content_type, creds, options):
		import boto3
		from botocore.exceptions import BotoCoreError, ClientError

		client = boto3.client(
			"textract",
			region_name=creds["region"],
			aws_access_key_id=creds["access_key"],
			aws_secret_access_key=creds["secret_key"],
		)
		try:
			response = client.detect_document_text(Document={"Bytes": buffer})
		except (BotoCoreError, ClientError) as e:
			raise ProviderError(f"AWS Textract error: {e}", provider=self.name)
		blocks = response.get("Blocks", [])
		lines = [b for b in blocks if b.get("BlockType") == "LINE"]
		if not lines:
			raise ProviderError("AWS Textract: No text extracted from document", provider=self.name)
		confidence = sum(b.get("Confidence", 0) for b in lines) / len(lines)
		pages = sum(1 for b in blocks if b.get("BlockType") == "PAGE") or 1
		return self.result("\n".join(b.get("Text", "") for b in lines), round(confidence, 2), pages)


@register_ocr_provider
class AzureDocumentIntelligenceProvider(OCRProvider):
	name = "azure-document-intelligence"
	label = "Azure Document Intelligence"
	model_id = "prebuilt-read"
	demo_text = (
		"Azure Document Intelligence credentials not configured. In production with valid credentials, "
		"this would contain actual OCR text extracted using Azure AI layout analysis."
	)

	def credentials(self):
		key = os.getenv("AZURE_DOCUMENT_INTELLIGENCE_KEY")
		endpoint = os.getenv("AZURE_DOCUMENT_INTELLIGENCE_ENDPOINT")
		if not key or not endpoint:
			return None
		return {"api_key": key, "endpoint": endpoint}

	def extract(self, buffer, content_type, creds, options):
		from azure.ai.documentintelligence import DocumentIntelligenceClient
		from azure.core.credentials import AzureKeyCredential
		from azure.core.exceptions import AzureError

		client = DocumentIntelligenceClient(endpoint=creds["endpoint"], credential=AzureKeyCredential(creds["api_key"]))
		try:
			poller = client.begin_analyze_document(self.model_id, body=buffer, content_type="application/octet-stream")
			result = poller.result()
		except AzureError as e:
			raise ProviderError(f"Azure Document Intelligence error: {e}", provider=self.name)
		if not result.content:
			raise ProviderError("Azure Document Intelligence: No text extracted from document", provider=self.name)
		words = [w for page in (result.pages or []) for w in (page.words or [])]
		confidence = round(sum(w.confidence or 0 for w in words) / len(words) * 100, 2) if words else 0
		languages = result.languages or []
		return self.result(
			result.content,
			confidence,
			pages=len(result.pages or []) or 1,
			language=languages[0].locale if languages else None,
		)


@register_ocr_provider
class OCRSpaceProvider(OCRProvider):
	name = "ocr-space"
	label = "OCR.space"
	max_size_kb = 1024
	demo_text = (
		"OCR.space API key not configured. In production with a valid API key, this would contain "
		"actual OCR text extracted using OCR.space's free-tier OCR service."
	)

	def credentials(self):
		key = os.getenv("OCR_SPACE_API_KEY")
		return {"api_key": key} if key else None

	def extract(self, buffer, content_type, creds, options):
		result = _post(
			"https://api.ocr.space/parse/image",
			self.label,
			data={
				"base64Image": f"data:{content_type};base64,{_b64(buffer)}",
				"apikey": creds["api_key"],
				"language": options.get("language", "eng"),
				"isOverlayRequired": "false",
				"detectOrientation": "true",
				"scale": "true",
				"OCREngine": "2",
			},
		)
		errors = result.get("ErrorMessage")
		if result.get("IsErroredOnProcessing") or (isinstance(errors, list) and errors and errors[0]):
			parsed = result.get("ParsedResults") or [{}]
			message = (errors[0] if isinstance(errors, list) and errors else errors) or parsed[0].get("ErrorMessage") or "Unknown error"
			raise ProviderError(f"OCR.space processing error: {message}", provider=self.name)
		parsed = result.get("ParsedResults") or []
		if not parsed:
			raise ProviderError("OCR.space: No results returned from API", provider=self.name)
		text = PAGE_BREAK.join(page.get("ParsedText") or "" for page in parsed).strip()
		if not text:
			raise ProviderError("OCR.space: No text extracted from document", provider=self.name)
		return self.result(text, confidence=95, pages=len(parsed), language=options.get("language", "eng"))


@register_ocr_provider
class TesseractProvider(OCRProvider):
	name = "tesseract"
	label = "Tesseract"
	demo_text = (
		"Tesseract binary not installed on this server. Install tesseract-ocr, or use Google Vision, "
		"AWS Textract, Azure Document Intelligence, Mistral, or OCR.space."
	)

	def credentials(self):
		import pytesseract

		try:
			return {"version": str(pytesseract.get_tesseract_version())}
		except (pytesseract.TesseractNotFoundError, OSError):
			return None

	def _ocr_image(self, image_bytes: bytes, lang: str):
		import pytesseract
		from PIL import Image

		image = Image.open(io.BytesIO(image_bytes))
		text = pytesseract.image_to_string(image, lang=lang)
		data = pytesseract.image_to_data(image, lang=lang, output_type=pytesseract.Output.DICT)
		scores = [float(c) for c in data.get("conf", []) if float(c) >= 0]
		return text.strip(), (sum(scores) / len(scores) if scores else 0)

	def extract(self, buffer, content_type, creds, options):
		lang = options.get("language", "eng")
		images = pdf_to_png_pages(buffer) if is_pdf(content_type) else [buffer]
		texts, scores = [], []
		try:
			for image_bytes in images:
				text, score = self._ocr_image(image_bytes, lang)
				texts.append(text)
				scores.append(score)
		except Exception as e:
			raise ProviderError(f"Tesseract OCR failed: {e}", provider=self.name)
		text = PAGE_BREAK.join(texts).strip()
		if not text:
			raise ProviderError("Tesseract: No text extracted from document", provider=self.name)
		return self.result(text, round(sum(scores) / len(scores), 2), pages=len(images), language=lang)


def is_demo_output(text: Optional[str]) -> bool:
	return bool(text) and DEMO_MARKER in text


class OCRRouter:
	"""Dispatches to a registered provider and reports health and latency."""

	def __init__(self, health=None, app_logger=None):
		self.health = health
		self.app_logger = app_logger

	def _log(self, method: str, *args, **kwargs) -> None:
		if self.app_logger is not None:
			getattr(self.app_logger, method)(*args, **kwargs)

	def process(
		self,
		buffer: bytes,
		content_type: str,
		provider: str,
		options: Optional[Dict[str, Any]] = None,
		job_id: Optional[str] = None,
		document_id: Optional[str] = None,
	) -> OCRResult:
		impl = get_ocr_provider(provider)
		ids = {"job_id": job_id, "document_id": document_id}
		self._log("info", "ocr", f"Calling OCR provider: {provider}", {"ocrProvider": provider, "bufferSize": len(buffer)}, **ids)
		start = time.monotonic()
		try:
			result = impl.process(buffer, content_type, options)
		except Exception as e:
			duration = int((time.monotonic() - start) * 1000)
			self._log("error", "ocr", f"OCR provider {provider} failed", e, {"provider": provider, "duration_ms": duration}, **ids)
			if self.health is not None:
				self.health.record(provider, "ocr", DOWN, duration, str(e))
			raise

		duration = int((time.monotonic() - start) * 1000)
		self._log(
			"info", "ocr", f"OCR provider {provider} completed successfully",
			{
				"provider": provider,
				"textLength": len(result.text),
				"duration_ms": duration,
				"confidence": result.metadata.confidence,
				"pages": result.metadata.pages,
			},
			**ids,
		)
		if self.health is not None:
			demo = is_demo_output(result.text)
			self.health.record(provider, "ocr", DEGRADED if demo else HEALTHY, duration, "API key not configured" if demo else None)
		return result

	def check_health(self, provider: str) -> HealthCheckResult:
		start = time.monotonic()
		try:
			result = self.process(b"", "application/pdf", provider)
		except Exception as e:
			return HealthCheckResult(provider=provider, type="ocr", status=DOWN, response_time=int((time.monotonic() - start) * 1000), error=str(e))
		elapsed = int((time.monotonic() - start) * 1000)
		if is_demo_output(result.text):
			return HealthCheckResult(provider=provider, type="ocr", status=DEGRADED, response_time=elapsed, error="API key not configured (demo mode)")
		return HealthCheckResult(provider=provider, type="ocr", status=HEALTHY, response_time=elapsed)
