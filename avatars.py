import os
import uuid
import logging
from pathlib import Path

from flask import current_app
from werkzeug.utils import secure_filename

from models import db
from services import ChatError, get_user

logger = logging.getLogger(__name__)

AVATAR_URL_PREFIX = '/avatars/'


def avatar_dir():
    path = Path(current_app.config['UPLOAD_FOLDER']) / 'avatars'
    path.mkdir(parents=True, exist_ok=True)
    return path


def allowed_file(filename):
    allowed = current_app.config['ALLOWED_AVATAR_EXTENSIONS']
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in allowed


def _remove_previous(url):
    """Delete an uploaded avatar file; the shared default is left alone."""
    if not url or not url.startswith(AVATAR_URL_PREFIX) or url == current_app.config['DEFAULT_AVATAR']:
        return
    old_path = avatar_dir() / secure_filename(url[len(AVATAR_URL_PREFIX):])
    try:
        old_path.unlink(missing_ok=True)
    except OSError as e:
        logger.error(f"Error removing old avatar {old_path}: {e}")


def save_avatar(username, file_storage):
    """Store an uploaded avatar for username and return the updated user."""
    if file_storage is None or not file_storage.filename:
        raise ChatError('No file uploaded')
    filename = secure_filename(file_storage.filename)
    if not filename or not allowed_file(filename):
        raise ChatError('File type not allowed')

    user = get_user(username)
    ext = filename.rsplit('.', 1)[1].lower()
    stored_name = f"{username}-{uuid.uuid4().hex[:8]}.{ext}"
    target = avatar_dir() / stored_name
    try:
        file_storage.save(os.fspath(target))
    except OSError as e:
        logger.error(f"Error saving avatar for {username}: {e}")
        raise ChatError('Could not store file', 500)

    previous = user.avatar
    user.avatar = AVATAR_URL_PREFIX + stored_name
    db.session.commit()
    _remove_previous(previous)
    logger.info(f"Avatar updated for {username}: {stored_name}")
    return user
