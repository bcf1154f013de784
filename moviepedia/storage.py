# moviepedia/storage.py
"""Local image store.

Pictures are written under ``UPLOAD_FOLDER`` with a random hash as the
file stem. The hash is the ``Image`` primary key and the stored link
names the file, so deleting a picture needs only its link.
"""
import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

from .errors import ValidationError
from .models import Image, db

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}


class ImageStore:
    def __init__(self, folder, url_prefix="/uploads"):
        self.folder = folder
        self.url_prefix = url_prefix.rstrip("/")

    def _path_for(self, filename):
        return os.path.join(self.folder, filename)

    def save_file(self, file_storage):
        """Persist an uploaded picture and return its (unflushed) ``Image`` row."""
        if file_storage is None or not file_storage.filename:
            raise ValidationError("A picture file is required")

        _, ext = os.path.splitext(secure_filename(file_storage.filename))
        ext = ext.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(f"Unsupported picture type: {ext or 'none'}")

        image_hash = uuid.uuid4().hex
        filename = f"{image_hash}{ext}"
        os.makedirs(self.folder, exist_ok=True)
        file_storage.save(self._path_for(filename))

        image = Image(image_id=image_hash, link=f"{self.url_prefix}/{filename}")
        db.session.add(image)
        current_app.logger.info("Stored picture %s", filename)
        return image

    def delete_file(self, link):
        """Remove the file an ``Image.link`` points at; missing files are ignored."""
        if not link:
            return
        filename = os.path.basename(link)
        path = self._path_for(filename)
        if os.path.isfile(path):
            os.remove(path)
            current_app.logger.info("Deleted picture %s", filename)


def get_image_store():
    return ImageStore(current_app.config["UPLOAD_FOLDER"])
