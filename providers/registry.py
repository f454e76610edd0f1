from typing import Dict, List, Type

from utils.exceptions import UnsupportedProviderError

# provider name -> implementation class
OCR_PROVIDERS: Dict[str, Type] = {}
LLM_PROVIDERS: Dict[str, Type] = {}


def register_ocr_provider(cls):
	"""Decorator to register OCR provider classes under their `name`"""
	OCR_PROVIDERS[cls.name] = cls
	return cls


def register_llm_provider(cls):
	"""Decorator to register LLM provider classes under their `name`"""
	LLM_PROVIDERS[cls.name] = cls
	return cls


def get_ocr_provider(name: str):
	if name not in OCR_PROVIDERS:
		raise UnsupportedProviderError(f"Unsupported OCR provider: {name}")
	return OCR_PROVIDERS[name]()


def get_llm_provider(name: str):
	if name not in LLM_PROVIDERS:
		raise UnsupportedProviderError(f"Unsupported LLM provider: {name}")
	return LLM_PROVIDERS[name]()


def list_ocr_providers() -> List[str]:
	return list(OCR_PROVIDERS.keys())


def list_llm_providers() -> List[str]:
	return list(LLM_PROVIDERS.keys())
