"""Build the zipped button page that is uploaded to the deck."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import random
import shutil
import string
import time
import zipfile
from collections.abc import Iterator, Mapping

from dispeys.protocol import Button

log = logging.getLogger(__name__)

BUTTON_COLS = 5
CHECK_OFFSET = 1016
CHUNK_SIZE = 1024
INVALID_BYTES = frozenset({0x00, 0x7C})

_LETTERS = string.ascii_lowercase + string.ascii_uppercase + string.digits
_JSON_ESCAPES = {
    "&": "\\u0026",
    "<": "\\u003c",
    ">": "\\u003e",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def random_string(n: int) -> str:
    """Return n random ASCII letters and digits."""
    return "".join(random.choice(_LETTERS) for _ in range(n))


def _escape_json(text: str) -> str:
    for char, escape in _JSON_ESCAPES.items():
        text = text.replace(char, escape)
    return text


def build_manifest(buttons: Mapping[int, Button]) -> tuple[bytes, list[str]]:
    """Return the page manifest JSON and the icon files it refers to."""
    manifest = {}
    icons = []
    for index, button in buttons.items():
        row, col = divmod(index, BUTTON_COLS)
        param = {}
        if button.name:
            param["Text"] = button.name
        if button.icon:
            icons.append(button.icon)
            param["Icon"] = "icons/" + button.icon
        manifest[f"{col}_{row}"] = {"State": 0, "ViewParam": [param]}
    text = json.dumps(manifest, indent=2, sort_keys=True, ensure_ascii=False)
    return _escape_json(text).encode(), icons


def _walk(root: str) -> Iterator[str]:
    for name in sorted(os.listdir(root)):
        path = os.path.join(root, name)
        yield path
        if os.path.isdir(path) and not os.path.islink(path):
            yield from _walk(path)


def zip_folder(src_dir, zip_file) -> None:
    """Zip the contents of src_dir in lexical order, deflating files."""
    src_dir = os.fspath(src_dir)
    with zipfile.ZipFile(zip_file, "w") as archive:
        for path in _walk(src_dir):
            arcname = os.path.relpath(path, src_dir).replace(os.sep, "/")
            info = zipfile.ZipInfo.from_file(path, arcname)
            if info.is_dir():
                archive.writestr(info, b"")
                continue
            info.compress_type = zipfile.ZIP_DEFLATED
            with open(path, "rb") as source, archive.open(info, "w") as target:
                shutil.copyfileobj(source, target)


def is_transferable(data: bytes) -> bool:
    """Tell whether no chunk-continuation byte would be a forbidden value."""
    return not any(byte in INVALID_BYTES for byte in data[CHECK_OFFSET::CHUNK_SIZE])


def prepare_zip(buttons: Mapping[int, Button], icon_dir, tmp_dir) -> str:
    """Build (or reuse) the zip for a button page and return its path."""
    build_path = os.path.join(os.fspath(tmp_dir), ".build")
    page_path = os.path.join(build_path, "page")
    shutil.rmtree(page_path, ignore_errors=True)
    os.makedirs(os.path.join(page_path, "icons"), exist_ok=True)

    manifest, icons = build_manifest(buttons)
    digest = hashlib.md5(manifest, usedforsecurity=False).hexdigest()
    zip_path = os.path.join(build_path, digest + ".zip")
    try:
        os.stat(zip_path)
    except FileNotFoundError:
        pass
    except OSError:
        return zip_path
    else:
        return zip_path

    with open(os.path.join(page_path, "manifest.json"), "wb") as handle:
        handle.write(manifest)

    for icon in icons:
        src = os.path.join(os.fspath(icon_dir), icon)
        dst = os.path.join(page_path, "icons", icon)
        try:
            shutil.copyfile(src, dst)
        except OSError as exc:
            log.warning("cannot copy icon %s: %s", src, exc)

    dummy_path = os.path.join(page_path, "dummy.txt")
    build_zip_path = os.path.join(build_path, ".build.zip")
    dummy = ""
    retries = 4
    while True:
        dummy += random_string(8 * retries)
        with open(dummy_path, "w") as handle:
            handle.write(dummy)
        zip_folder(page_path, build_zip_path)
        with open(build_zip_path, "rb") as handle:
            if is_transferable(handle.read()):
                break
        retries += 1
        time.sleep(0.05)

    try:
        os.replace(build_zip_path, zip_path)
    except OSError as exc:
        log.warning("cannot rename %s -> %s: %s", build_zip_path, zip_path, exc)
    return zip_path