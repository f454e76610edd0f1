import logging
import os
import re

logger = logging.getLogger("services.file_storage")

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str) -> str:
	name = _UNSAFE.sub("_", os.path.basename(filename or "")).strip("._")
	return name or "file"


class LocalFileStorage:
	"""Stores uploaded files under a base directory; `file_url` is the path relative to it."""

	def __init__(self, base_dir: str):
		self.base_dir = base_dir

	def _path(self, file_url: str) -> str:
		path = os.path.abspath(os.path.join(self.base_dir, file_url))
		if not path.startswith(os.path.abspath(self.base_dir) + os.sep):
			raise ValueError(f"Invalid file path: {file_url}")
		return path

	def save(self, folder: str, filename: str, content: bytes) -> str:
		file_url = f"{folder}/{safe_filename(filename)}"
		path = self._path(file_url)
		os.makedirs(os.path.dirname(path), exist_ok=True)
		with open(path, "wb") as f:
			f.write(content)
		logger.info("file_stored", extra={"path": file_url, "size_bytes": len(content)})
		return file_url

	def read(self, file_url: str) -> bytes:
		with open(self._path(file_url), "rb") as f:
			return f.read()
