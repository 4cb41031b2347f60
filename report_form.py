"""
Parsing and validation of the report form posted to /api/generate-pdf.

Field names match what the browser form sends:
    projectTitle, sponsor     plain text
    coverImage                one file
    proof_files, titles       repeated, paired by position
    savedItems                optional JSON [{id, fileBase64, title}] restored from a draft
"""

import json, re, unicodedata
from dataclasses import dataclass, field

from image_prep import decode_base64_image

FILENAME_PREFIX = "Comprovacao"

MSG_NO_COVER    = "Falta a imagem de capa. Adicione uma imagem de capa e tente novamente."
MSG_NO_PROOFS   = "Faltam as imagens de comprovação. Adicione ao menos uma imagem."
MSG_NO_CAPTIONS = "Cada imagem de comprovação precisa de um campo de legenda (local)."
MSG_BAD_DRAFT   = "Não foi possível recuperar as imagens salvas no rascunho."
MSG_EMPTY_FILE  = "O arquivo \"{}\" está vazio. Selecione a imagem novamente."


class ReportValidationError(ValueError):
    """The submitted form is incomplete; reported to the user as a 400."""


@dataclass
class UploadedImage:
    data: bytes
    mimetype: str = "image/jpeg"
    filename: str = ""


@dataclass
class ProofItem:
    image: UploadedImage
    caption: str = ""


@dataclass
class ReportRequest:
    project_title: str
    sponsor: str
    cover_image: UploadedImage
    proof_items: list = field(default_factory=list)

    @property
    def captions(self):
        return [item.caption for item in self.proof_items]


# ── FILENAMES ─────────────────────────────────────────────────────────────────

def slugify(text):
    """'Festa de Rua!' -> 'festa-de-rua'"""
    folded = unicodedata.normalize("NFKD", text or "")
    folded = "".join(c for c in folded if not unicodedata.combining(c))
    folded = folded.encode("ascii", "ignore").decode("ascii").lower()
    return re.sub(r"[^a-z0-9]+", "-", folded).strip("-")


def suggested_filename(project_title, sponsor):
    parts = [FILENAME_PREFIX] + [s for s in (slugify(project_title), slugify(sponsor)) if s]
    return "_".join(parts) + ".pdf"


# ── PARSING ───────────────────────────────────────────────────────────────────

def _read_upload(storage, empty_error=None):
    """Werkzeug FileStorage -> UploadedImage, or None when no file was picked."""
    if storage is None or not (storage.filename or "").strip():
        return None
    data = storage.read()
    if not data:
        raise ReportValidationError(empty_error or MSG_EMPTY_FILE.format(storage.filename))
    return UploadedImage(data=data, mimetype=storage.mimetype or "application/octet-stream",
                         filename=storage.filename)


def parse_saved_items(raw):
    """Decode the savedItems JSON into ProofItems, keeping array order."""
    if not raw or not raw.strip():
        return []
    try:
        entries = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ReportValidationError(MSG_BAD_DRAFT) from e
    if not isinstance(entries, list):
        raise ReportValidationError(MSG_BAD_DRAFT)

    items = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("fileBase64"):
            raise ReportValidationError(MSG_BAD_DRAFT)
        title = entry.get("title") or ""
        if not isinstance(entry["fileBase64"], str) or not isinstance(title, str):
            raise ReportValidationError(MSG_BAD_DRAFT)
        try:
            data, mimetype = decode_base64_image(entry["fileBase64"])
        except ValueError as e:
            raise ReportValidationError(MSG_BAD_DRAFT) from e
        name = f"{entry.get('id') or len(items)}.jpg"
        items.append(ProofItem(UploadedImage(data, mimetype, name), title.strip()))
    return items


def parse_report_request(form, files):
    """
    Build a ReportRequest from the multipart form.

    `form` and `files` are the request's MultiDict-like objects (anything with
    .get and .getlist). Raises ReportValidationError for a 400-class problem.
    """
    cover = _read_upload(files.get("coverImage"), empty_error=MSG_NO_COVER)
    if cover is None:
        raise ReportValidationError(MSG_NO_COVER)

    proof_files = [f for f in files.getlist("proof_files") if (f.filename or "").strip()]
    titles      = form.getlist("titles")
    if len(titles) != len(proof_files):
        raise ReportValidationError(MSG_NO_CAPTIONS)

    items = parse_saved_items(form.get("savedItems", ""))
    for storage, title in zip(proof_files, titles):
        items.append(ProofItem(_read_upload(storage), title.strip()))

    if not items:
        raise ReportValidationError(MSG_NO_PROOFS)

    return ReportRequest(
        project_title=form.get("projectTitle", "").strip(),
        sponsor=form.get("sponsor", "").strip(),
        cover_image=cover,
        proof_items=items,
    )
