"""Local-disk audio store — recordings keyed by their stored URI."""

from pathlib import Path

from loguru import logger

from config.errors import InvalidInputError


class AudioStore:
    def __init__(self, root: str | Path = "data/recordings"):
        self.root = Path(root)

    def _resolve(self, uri: str) -> Path:
        """Map a recording URI to a path under the store root."""
        relative = uri.split("://", 1)[-1].lstrip("/")
        path = (self.root / relative).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise InvalidInputError(f"Recording URI escapes the audio store: {uri}")
        return path

    def exists(self, uri: str) -> bool:
        if not uri:
            return False
        return self._resolve(uri).is_file()

    def read(self, uri: str) -> bytes:
        return self._resolve(uri).read_bytes()

    def save(self, call_id: str, data: bytes, filename: str = "recording.wav") -> str:
        """Write audio for a call and return its URI."""
        suffix = Path(filename).suffix or ".wav"
        uri = f"{call_id}{suffix}"
        path = self._resolve(uri)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info(f"[{call_id}] Stored {len(data) / 1024:.0f} KB audio at {path}")
        return uri
