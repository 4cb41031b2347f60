"""
Proof report -> PDF
-------------------
Assembles the "Comprovação de divulgação" document with PyMuPDF:

    page 1      cover: header, project title, sponsor, signature, cover photo
    pages 2..   proof photos, three per landscape page, caption under each
    last page   index of every non-empty caption (only if there is one)

All coordinates are PDF points with the origin at the top-left corner of the
page, which is how PyMuPDF addresses pages.
"""

import math
from dataclasses import dataclass
import fitz  # PyMuPDF

from image_prep import prepare_image, image_size

# ── LAYOUT ────────────────────────────────────────────────────────────────────

PAGE_RECT         = fitz.paper_rect("a4-l")   # 842 x 595, landscape
MARGIN            = 50
GRAY_HEADER       = (0.4, 0.4, 0.4)
GRAY_SPONSOR      = (0.2, 0.2, 0.2)
GRAY_ROLE         = (0.3, 0.3, 0.3)
GRAY_RULE         = (0.8, 0.8, 0.8)
BLACK             = (0, 0, 0)

FONT_REGULAR      = "helv"                    # Helvetica
FONT_BOLD         = "hebo"                    # Helvetica-Bold

HEADER_TEXT       = "Comprovação de divulgação"
HEADER_SIZE       = 18
TITLE_SIZE        = 32
TITLE_LINE_HEIGHT = 36
TITLE_MAX_LINES   = 4
SPONSOR_SIZE      = 20
SPONSOR_MAX_LINES = 2

SIGNATURE_BOX     = (280, 90)
SIGNATURE_BOTTOM  = MARGIN + 100              # distance from the page bottom
ROLE_TEXT         = "Agente Cultural responsável"
ROLE_SIZE         = 14
COVER_GUTTER      = 20                        # gap between the middle line and the photo

IMAGES_PER_ROW    = 3
ROWS_PER_PAGE     = 1
IMAGE_GAP         = 20
CAPTION_HEIGHT    = 40
CAPTION_SIZE      = 12
CAPTION_LINE      = 14
CAPTION_MAX_LINES = 2

INDEX_TITLE       = "Índice de locais"
INDEX_TITLE_SIZE  = 24
INDEX_COLUMNS     = 3
INDEX_FONT_SIZE   = 12
INDEX_LINE_HEIGHT = 18

ELLIPSIS          = "..."


# ── GEOMETRY HELPERS ──────────────────────────────────────────────────────────

def scale_to_fit(width, height, max_width, max_height):
    """Largest (w, h) with the source aspect ratio that fits inside max_width x max_height."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Image has invalid dimensions {width}x{height}")
    scale = min(max_width / width, max_height / height)
    return width * scale, height * scale


def text_width(text, fontname, fontsize):
    return fitz.get_text_length(text, fontname=fontname, fontsize=fontsize)


def fit_line(text, fontname, fontsize, max_width):
    """Cut `text` down (adding an ellipsis) until it is no wider than max_width."""
    if text_width(text, fontname, fontsize) <= max_width:
        return text
    cut = text
    while cut and text_width(cut.rstrip() + ELLIPSIS, fontname, fontsize) > max_width:
        cut = cut[:-1]
    return cut.rstrip() + ELLIPSIS


def wrap_text(text, fontname, fontsize, max_width):
    """Break text into lines that fit within max_width, returning list of strings."""
    words   = text.split()
    lines   = []
    current = ""
    for word in words:
        test = (current + " " + word).strip()
        if text_width(test, fontname, fontsize) <= max_width:
            current = test
        else:
            if current:
                lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def clamp_lines(lines, max_lines, fontname, fontsize, max_width):
    if len(lines) <= max_lines:
        return lines
    kept = lines[:max_lines]
    kept[-1] = fit_line(kept[-1] + ELLIPSIS, fontname, fontsize, max_width)
    return kept


@dataclass
class ProofGrid:
    """Cell geometry for the proof pages."""
    page_width: float = PAGE_RECT.width
    page_height: float = PAGE_RECT.height
    margin: float = MARGIN
    columns: int = IMAGES_PER_ROW
    rows: int = ROWS_PER_PAGE
    gap: float = IMAGE_GAP
    caption_height: float = CAPTION_HEIGHT

    @property
    def per_page(self):
        return self.columns * self.rows

    @property
    def cell_width(self):
        content = self.page_width - 2 * self.margin
        return (content - (self.columns - 1) * self.gap) / self.columns

    @property
    def cell_height(self):
        content = self.page_height - 2 * self.margin
        return (content - (self.rows - 1) * self.gap) / self.rows

    @property
    def image_max_height(self):
        return self.cell_height - self.caption_height

    def cell_rect(self, slot):
        """Rect of the slot-th cell on a page, counting left to right, top to bottom."""
        col = slot % self.columns
        row = slot // self.columns
        x0  = self.margin + col * (self.cell_width + self.gap)
        y0  = self.margin + row * (self.cell_height + self.gap)
        return fitz.Rect(x0, y0, x0 + self.cell_width, y0 + self.cell_height)

    def page_count(self, n_items):
        return math.ceil(n_items / self.per_page)


def expected_page_count(proof_count, captions, grid=None):
    grid = grid or ProofGrid()
    has_index = any((c or "").strip() for c in captions)
    return 1 + grid.page_count(proof_count) + (1 if has_index else 0)


def _new_page(doc):
    return doc.new_page(width=PAGE_RECT.width, height=PAGE_RECT.height)


# ── COVER ─────────────────────────────────────────────────────────────────────

def draw_cover_page(doc, request, signature_bytes, jpeg_quality=85):
    page   = _new_page(doc)
    width  = page.rect.width
    height = page.rect.height
    mid_x  = width / 2
    left_x = MARGIN

    # Left column: header, title, sponsor
    y = MARGIN + HEADER_SIZE
    page.insert_text((left_x, y), HEADER_TEXT, fontname=FONT_REGULAR,
                     fontsize=HEADER_SIZE, color=GRAY_HEADER)

    text_max_w = mid_x - MARGIN * 1.5
    title_lines = wrap_text(request.project_title, FONT_BOLD, TITLE_SIZE, text_max_w)
    title_lines = clamp_lines(title_lines, TITLE_MAX_LINES, FONT_BOLD, TITLE_SIZE, text_max_w)
    y += 40 + TITLE_SIZE * 0.3
    for line in title_lines:
        page.insert_text((left_x, y), fit_line(line, FONT_BOLD, TITLE_SIZE, text_max_w),
                         fontname=FONT_BOLD, fontsize=TITLE_SIZE, color=BLACK)
        y += TITLE_LINE_HEIGHT
    y += 28

    sponsor_lines = wrap_text(request.sponsor, FONT_REGULAR, SPONSOR_SIZE, text_max_w)
    sponsor_lines = clamp_lines(sponsor_lines, SPONSOR_MAX_LINES, FONT_REGULAR, SPONSOR_SIZE, text_max_w)
    for line in sponsor_lines:
        page.insert_text((left_x, y), fit_line(line, FONT_REGULAR, SPONSOR_SIZE, text_max_w),
                         fontname=FONT_REGULAR, fontsize=SPONSOR_SIZE, color=GRAY_SPONSOR)
        y += SPONSOR_SIZE * 1.2

    # Signature block, anchored to the bottom of the left column
    sig_w, sig_h = scale_to_fit(*image_size(signature_bytes), *SIGNATURE_BOX)
    sig_bottom   = height - SIGNATURE_BOTTOM
    page.insert_image(fitz.Rect(left_x, sig_bottom - sig_h, left_x + sig_w, sig_bottom),
                      stream=signature_bytes)
    page.draw_line((left_x, sig_bottom + 10), (left_x + sig_w, sig_bottom + 10),
                   color=GRAY_RULE, width=1)
    page.insert_text((left_x, sig_bottom + 30), ROLE_TEXT, fontname=FONT_REGULAR,
                     fontsize=ROLE_SIZE, color=GRAY_ROLE)

    # Right half: cover photo, centred in its box
    cover    = prepare_image(request.cover_image.data, quality=jpeg_quality)
    box      = fitz.Rect(mid_x + COVER_GUTTER, MARGIN, width - MARGIN, height - MARGIN)
    w, h     = scale_to_fit(cover.width, cover.height, box.width, box.height)
    x0       = box.x0 + (box.width - w) / 2
    y0       = box.y0 + (box.height - h) / 2
    page.insert_image(fitz.Rect(x0, y0, x0 + w, y0 + h), stream=cover.data)
    return page.number


# ── PROOF GRID ────────────────────────────────────────────────────────────────

def draw_proof_pages(doc, items, grid=None, jpeg_quality=85):
    """Lay out the proof grid; returns the numbers of the pages it added."""
    grid  = grid or ProofGrid()
    page  = None
    pages = []
    for i, item in enumerate(items):
        slot = i % grid.per_page
        if slot == 0:
            page = _new_page(doc)
            pages.append(page.number)

        cell  = grid.cell_rect(slot)
        photo = prepare_image(item.image.data, quality=jpeg_quality)
        w, h  = scale_to_fit(photo.width, photo.height, cell.width, grid.image_max_height)
        x0    = cell.x0 + (cell.width - w) / 2
        page.insert_image(fitz.Rect(x0, cell.y0, x0 + w, cell.y0 + h), stream=photo.data)

        lines = wrap_text(item.caption, FONT_REGULAR, CAPTION_SIZE, cell.width)
        lines = clamp_lines(lines, CAPTION_MAX_LINES, FONT_REGULAR, CAPTION_SIZE, cell.width)
        y = cell.y0 + h + 20
        for line in lines:
            line = fit_line(line, FONT_REGULAR, CAPTION_SIZE, cell.width)
            tx   = cell.x0 + (cell.width - text_width(line, FONT_REGULAR, CAPTION_SIZE)) / 2
            page.insert_text((tx, y), line, fontname=FONT_REGULAR,
                             fontsize=CAPTION_SIZE, color=BLACK)
            y += CAPTION_LINE
    return pages


# ── INDEX ─────────────────────────────────────────────────────────────────────

def draw_index_page(doc, captions):
    """Append the caption index and return its page number, or None (adding nothing) when every caption is blank."""
    entries = [c.strip() for c in captions if c and c.strip()]
    if not entries:
        return None

    page   = _new_page(doc)
    width  = page.rect.width
    height = page.rect.height

    y = MARGIN + INDEX_TITLE_SIZE
    page.insert_text((MARGIN, y), INDEX_TITLE, fontname=FONT_BOLD,
                     fontsize=INDEX_TITLE_SIZE, color=BLACK)

    top       = y + 36
    rows      = math.ceil(len(entries) / INDEX_COLUMNS)
    line_h    = min(INDEX_LINE_HEIGHT, (height - MARGIN - top) / rows)
    fontsize  = min(INDEX_FONT_SIZE, line_h * 0.75)
    col_w     = (width - 2 * MARGIN - (INDEX_COLUMNS - 1) * IMAGE_GAP) / INDEX_COLUMNS
    indent    = 10

    for i, entry in enumerate(entries):
        col = i // rows
        row = i % rows
        x   = MARGIN + col * (col_w + IMAGE_GAP)
        by  = top + row * line_h
        page.draw_circle((x + 3, by - fontsize * 0.3), max(1.0, fontsize * 0.15),
                         color=BLACK, fill=BLACK)
        page.insert_text((x + indent, by), fit_line(entry, FONT_REGULAR, fontsize, col_w - indent),
                         fontname=FONT_REGULAR, fontsize=fontsize, color=BLACK)
    return page.number


# ── DOCUMENT ──────────────────────────────────────────────────────────────────

def build_report_pdf(request, signature_bytes, jpeg_quality=85):
    """Lay out the whole report and return the PDF bytes."""
    doc = fitz.open()
    try:
        draw_cover_page(doc, request, signature_bytes, jpeg_quality=jpeg_quality)
        draw_proof_pages(doc, request.proof_items, jpeg_quality=jpeg_quality)
        draw_index_page(doc, request.captions)
        return doc.tobytes(garbage=3, deflate=True)
    finally:
        doc.close()
