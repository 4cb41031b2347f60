import math

import fitz
import pytest

from pdf_report import (
    ProofGrid, scale_to_fit, wrap_text, fit_line, text_width, expected_page_count,
    draw_cover_page, draw_index_page, draw_proof_pages, build_report_pdf, MARGIN, FONT_REGULAR,
)
from report_form import ReportRequest, ProofItem, UploadedImage


@pytest.mark.parametrize("w, h, max_w, max_h", [
    (4000, 3000, 234, 455),
    (3000, 4000, 234, 455),
    (10, 10, 280, 90),
    (1, 5000, 351, 495),
    (5000, 1, 351, 495),
    (640, 480, 640, 480),
])
def test_scale_to_fit_stays_in_box_and_keeps_ratio(w, h, max_w, max_h):
    sw, sh = scale_to_fit(w, h, max_w, max_h)

    assert sw <= max_w + 1e-9
    assert sh <= max_h + 1e-9
    assert sw / sh == pytest.approx(w / h, rel=1e-9)
    # one side always touches the box
    assert math.isclose(sw, max_w) or math.isclose(sh, max_h)


def test_scale_to_fit_upscales_small_images():
    assert scale_to_fit(10, 5, 100, 100) == pytest.approx((100, 50))


def test_scale_to_fit_rejects_empty_image():
    with pytest.raises(ValueError):
        scale_to_fit(0, 10, 100, 100)


def test_proof_grid_geometry():
    grid = ProofGrid()

    assert grid.per_page == 3
    assert grid.cell_width == pytest.approx((842 - 2 * MARGIN - 2 * 20) / 3, abs=0.5)
    assert grid.cell_height == pytest.approx(595 - 2 * MARGIN, abs=0.5)
    assert grid.image_max_height == pytest.approx(grid.cell_height - 40)

    first, last = grid.cell_rect(0), grid.cell_rect(2)
    assert first.x0 == MARGIN and first.y0 == MARGIN
    assert last.x1 == pytest.approx(grid.page_width - MARGIN)
    assert grid.cell_rect(1).x0 - first.x1 == pytest.approx(20)


@pytest.mark.parametrize("n, pages", [(1, 1), (3, 1), (4, 2), (6, 2), (7, 3)])
def test_proof_grid_page_count(n, pages):
    assert ProofGrid().page_count(n) == pages


def test_expected_page_count():
    assert expected_page_count(4, ["a", "", "", ""]) == 1 + 2 + 1
    assert expected_page_count(4, ["", " ", "", ""]) == 1 + 2
    assert expected_page_count(1, []) == 2


def test_wrap_text_respects_width():
    text  = "Festival Internacional de Cultura Popular da Zona Norte"
    lines = wrap_text(text, "hebo", 32, 346)

    assert len(lines) > 1
    assert " ".join(lines) == text
    for line in lines:
        assert text_width(line, "hebo", 32) <= 346


def test_wrap_text_empty():
    assert wrap_text("", FONT_REGULAR, 12, 100) == []


def test_fit_line_adds_ellipsis():
    line = fit_line("Avenida Presidente Juscelino Kubitschek de Oliveira", FONT_REGULAR, 12, 100)

    assert line.endswith("...")
    assert text_width(line, FONT_REGULAR, 12) <= 100


def _request(image_bytes, captions):
    img = UploadedImage(image_bytes(size=(60, 90)))
    return ReportRequest(
        project_title="Projeto",
        sponsor="Patrocinador",
        cover_image=UploadedImage(image_bytes(size=(300, 200))),
        proof_items=[ProofItem(img, c) for c in captions],
    )


def test_proof_images_stay_inside_their_cells(image_bytes):
    req  = _request(image_bytes, ["A", "B", "C", "D"])
    grid = ProofGrid()
    with fitz.open() as doc:
        pages = draw_proof_pages(doc, req.proof_items, grid=grid)
        assert pages == [0, 1]

        for pno in pages:
            page = doc[pno]
            for info in page.get_image_info():
                bbox = fitz.Rect(info["bbox"])
                assert bbox.x0 >= MARGIN - 0.5
                assert bbox.x1 <= grid.page_width - MARGIN + 0.5
                assert bbox.height <= grid.image_max_height + 0.5


def test_index_page_skipped_without_captions():
    with fitz.open() as doc:
        assert draw_index_page(doc, ["", "   "]) is None
        assert doc.page_count == 0


def test_index_page_fits_many_captions():
    captions = [f"Local número {i}" for i in range(200)]
    with fitz.open() as doc:
        pno = draw_index_page(doc, captions)
        assert doc.page_count == 1
        text = doc[pno].get_text()
        assert "Local número 0" in text
        assert "Local número 199" in text


def test_build_report_pdf(image_bytes, signature_path):
    req = _request(image_bytes, ["Praça", "", "Mercado", "Estação", "Porto"])
    pdf = build_report_pdf(req, signature_path.read_bytes())

    with fitz.open(stream=pdf, filetype="pdf") as doc:
        assert doc.page_count == expected_page_count(5, req.captions) == 4


def test_drawing_returns_page_numbers(image_bytes, signature_path):
    req = _request(image_bytes, ["A", "B", "C", "D", "E", "F", "G"])
    with fitz.open() as doc:
        assert draw_cover_page(doc, req, signature_path.read_bytes()) == 0
        assert draw_proof_pages(doc, req.proof_items) == [1, 2, 3]
        assert draw_index_page(doc, req.captions) == 4

        # every page stays usable after later pages were added
        for pno in range(doc.page_count):
            assert doc[pno].get_text()
