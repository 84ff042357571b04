from pathlib import Path

from doodleboard.config import settings

URL_PREFIX = "/uploads"


class LocalStorage:
    """Keeps normalized doodle images on local disk; served as static files under ``/uploads``."""

    def __init__(self, base_dir: str = settings.UPLOAD_DIR):
        self.base = Path(base_dir)
        self.base.mkdir(parents=True, exist_ok=True)

    def save(self, filename: str, data: bytes) -> str:
        path = self.base / filename
        with open(path, "wb") as f:
            f.write(data)
        return f"{URL_PREFIX}/{filename}"

    def exists(self, filename: str) -> bool:
        return (self.base / filename).exists()

    def delete(self, filename: str) -> None:
        (self.base / filename).unlink(missing_ok=True)
