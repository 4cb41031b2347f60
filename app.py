"""
Comprovação de divulgação -> PDF
--------------------------------
Run: python app.py
Then open http://localhost:5000
Requires: pip install flask PyMuPDF Pillow
Put the signature image at static/assinatura.png (or set SIGNATURE_PATH).
"""

import os, traceback
from flask import Flask, request, jsonify, render_template_string, Response
from werkzeug.exceptions import HTTPException

from report_form import parse_report_request, suggested_filename, ReportValidationError
from pdf_report import build_report_pdf, expected_page_count

# ── CONFIG ────────────────────────────────────────────────────────────────────
BASE_DIR       = os.path.dirname(os.path.abspath(__file__))
SIGNATURE_PATH = os.environ.get("SIGNATURE_PATH", os.path.join(BASE_DIR, "static", "assinatura.png"))
MAX_UPLOAD_MB  = int(os.environ.get("MAX_UPLOAD_MB", 100))
JPEG_QUALITY   = int(os.environ.get("JPEG_QUALITY", 85))


def read_signature(path):
    """Read on every request."""
    with open(path, "rb") as f:
        return f.read()


# ── FLASK APP ─────────────────────────────────────────────────────────────────

app = Flask(__name__)
app.config["SIGNATURE_PATH"]       = SIGNATURE_PATH
app.config["MAX_CONTENT_LENGTH"]   = MAX_UPLOAD_MB * 1024 * 1024
# savedItems carries whole images as data URLs in a plain (non-file) field
app.config["MAX_FORM_MEMORY_SIZE"] = MAX_UPLOAD_MB * 1024 * 1024
app.config["JPEG_QUALITY"]         = JPEG_QUALITY

HTML = """<!DOCTYPE html>
<html lang="pt-BR">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Comprovação de Divulgação · Gerador de PDF</title>
<link rel="preconnect" href="https://fonts.googleapis.com">
<link href="https://fonts.googleapis.com/css2?family=DM+Mono:wght@300;400&family=DM+Sans:wght@300;400;500;700&display=swap" rel="stylesheet">
<script src="https://cdn.jsdelivr.net/npm/heic2any@0.0.4/dist/heic2any.min.js"></script>
<style>
  *, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }

  :root {
    --paper:      #ffffff;
    --ink:        #111111;
    --ink-soft:   #444444;
    --line:       #c8c8c8;
    --line-soft:  #e6e6e6;
    --muted:      #777777;
    --accent:     #111111;
    --danger:     #c62828;
    --warn:       #b26a00;
    --success:    #2e7d32;
  }

  body {
    background: var(--paper);
    font-family: 'DM Sans', sans-serif;
    color: var(--ink);
    min-height: 100vh;
    display: flex;
    justify-content: center;
    padding: 32px 16px 80px;
  }

  main { width: 100%; max-width: 1040px; }

  h1 { font-size: 1.8rem; font-weight: 700; margin-bottom: 24px; }

  /* ── CARDS ── */
  .card {
    border: 1px solid var(--line);
    border-radius: 10px;
    padding: 24px;
    margin-bottom: 28px;
  }

  .card h2 { font-size: 1.35rem; font-weight: 700; margin-bottom: 16px; }

  .grid-2 {
    display: grid;
    grid-template-columns: 1fr 1fr;
    gap: 24px;
  }

  @media (max-width: 720px) { .grid-2 { grid-template-columns: 1fr; } }

  label.field { display: block; font-weight: 500; margin-bottom: 6px; }

  input[type=text] {
    width: 100%;
    padding: 8px 10px;
    border: 1px solid #999;
    border-radius: 6px;
    font: inherit;
  }

  input[type=text]:focus { outline: none; border-color: var(--ink); }

  .field-wrap { margin-bottom: 16px; }

  input[type=file] { font-size: 0.85rem; }

  .cover-preview {
    margin-top: 14px;
    width: 100%;
    height: 140px;
    object-fit: contain;
    border: 1px solid var(--line-soft);
    border-radius: 8px;
  }

  .hint {
    margin-top: 6px;
    font-family: 'DM Mono', monospace;
    font-size: 0.72rem;
    color: var(--muted);
  }

  .hint.warn { color: var(--warn); }

  /* ── PROOF ITEMS ── */
  .items {
    display: grid;
    grid-template-columns: repeat(3, 1fr);
    gap: 16px;
  }

  @media (max-width: 720px) { .items { grid-template-columns: repeat(2, 1fr); } }

  .item {
    position: relative;
    display: flex;
    flex-direction: column;
    border: 1px solid var(--line);
    border-radius: 8px;
    overflow: hidden;
  }

  .item img, .item .missing {
    width: 100%;
    aspect-ratio: 2 / 3;
    object-fit: cover;
    background: #f4f4f4;
  }

  .item .missing {
    display: flex;
    align-items: center;
    justify-content: center;
    text-align: center;
    padding: 12px;
    color: var(--warn);
    font-size: 0.82rem;
  }

  .item .caption { padding: 8px; margin-top: auto; }
  .item .caption input[type=text] { font-size: 0.85rem; padding: 5px 8px; }
  .item .repick { display: block; margin-top: 6px; font-size: 0.75rem; }

  .item .delete {
    position: absolute;
    top: 8px;
    right: 8px;
    width: 24px;
    height: 24px;
    border: none;
    border-radius: 50%;
    background: var(--danger);
    color: #fff;
    font-weight: 700;
    font-size: 0.7rem;
    cursor: pointer;
  }

  /* ── BUTTON ── */
  .btn {
    width: 100%;
    padding: 14px 16px;
    border: none;
    border-radius: 8px;
    background: var(--accent);
    color: #fff;
    font: inherit;
    font-weight: 500;
    cursor: pointer;
  }

  .btn:hover:not(:disabled) { background: #333; }
  .btn:disabled { background: #9e9e9e; cursor: not-allowed; }

  .spinner {
    display: inline-block;
    width: 14px;
    height: 14px;
    margin-right: 8px;
    border: 2px solid rgba(255,255,255,0.4);
    border-top-color: #fff;
    border-radius: 50%;
    vertical-align: -2px;
    animation: spin 0.8s linear infinite;
  }

  @keyframes spin { to { transform: rotate(360deg); } }

  .status {
    margin-top: 14px;
    min-height: 1.2em;
    font-size: 0.9rem;
    color: var(--ink-soft);
  }

  .status.error { color: var(--danger); }
  .status.ok    { color: var(--success); }

  .toolbar { display: flex; justify-content: space-between; align-items: center; margin-bottom: 12px; }
  .link-btn { background: none; border: none; color: var(--muted); text-decoration: underline; cursor: pointer; font: inherit; font-size: 0.8rem; }
  .hidden { display: none !important; }
</style>
</head>
<body>
<main>
<h1>Comprovação de Divulgação</h1>

<form id="reportForm" novalidate>

  <!-- 1. Cover -->
  <div class="card">
    <div class="toolbar">
      <h2>1. Dados da Capa</h2>
      <button type="button" class="link-btn" id="clearDraftBtn">Limpar rascunho</button>
    </div>
    <div class="grid-2">
      <div>
        <div class="field-wrap">
          <label class="field" for="projectTitle">Título do Projeto</label>
          <input type="text" id="projectTitle" autocomplete="off">
        </div>
        <div class="field-wrap">
          <label class="field" for="sponsor">Patrocinador</label>
          <input type="text" id="sponsor" autocomplete="off">
        </div>
      </div>
      <div>
        <label class="field" for="coverInput">Imagem de Capa</label>
        <input type="file" id="coverInput" accept="image/png,image/jpeg,image/heic,image/heif,.heic,.heif">
        <div class="hint warn hidden" id="coverHint">Rascunho recuperado: selecione a imagem de capa novamente.</div>
        <img class="cover-preview hidden" id="coverPreview" alt="Preview da capa">
      </div>
    </div>
  </div>

  <!-- 2. Proof images -->
  <div class="card">
    <h2>2. Adicionar Imagens de Comprovação</h2>
    <input type="file" id="proofInput" multiple accept="image/png,image/jpeg,image/heic,image/heif,.heic,.heif">
    <div class="hint">PNG · JPG · HEIC (convertido para JPG no navegador)</div>
  </div>

  <!-- 3. Captions -->
  <div class="card hidden" id="itemsCard">
    <h2>3. Locais das Imagens</h2>
    <div class="items" id="items"></div>
  </div>

  <button type="submit" class="btn" id="submitBtn" disabled>Gerar PDF de Comprovação</button>
  <div class="status" id="status"></div>
</form>
</main>

<script>
  // ── Draft storage: four string slots, no schema version ──
  const KEY_TITLE   = 'comprovacao.title';
  const KEY_SPONSOR = 'comprovacao.sponsor';
  const KEY_COVER   = 'comprovacao.coverPreview';
  const KEY_ITEMS   = 'comprovacao.items';

  const PREVIEW_MAX_SIDE = 1600;
  const PREVIEW_QUALITY  = 0.85;

  const form          = document.getElementById('reportForm');
  const titleInput    = document.getElementById('projectTitle');
  const sponsorInput  = document.getElementById('sponsor');
  const coverInput    = document.getElementById('coverInput');
  const coverPreview  = document.getElementById('coverPreview');
  const coverHint     = document.getElementById('coverHint');
  const proofInput    = document.getElementById('proofInput');
  const itemsCard     = document.getElementById('itemsCard');
  const itemsEl       = document.getElementById('items');
  const submitBtn     = document.getElementById('submitBtn');
  const status        = document.getElementById('status');
  const clearDraftBtn = document.getElementById('clearDraftBtn');

  // item: { id, file: File|null, preview: dataURL|null, caption }
  let coverFile = null;
  let coverDataUrl = null;
  let items = [];
  let loading = false;

  function newId() {
    return Date.now().toString(36) + Math.random().toString(36).slice(2, 8);
  }

  function setStatus(msg, kind = '') {
    status.textContent = msg;
    status.className = 'status' + (kind ? ' ' + kind : '');
  }

  // ── HEIC → JPEG ──
  function isHeic(file) {
    return /image\\/hei[cf]/i.test(file.type) || /\\.hei[cf]$/i.test(file.name);
  }

  async function normalizeFile(file) {
    if (!isHeic(file)) return file;
    let blob = await heic2any({ blob: file, toType: 'image/jpeg', quality: 0.9 });
    if (Array.isArray(blob)) blob = blob[0];
    const name = file.name.replace(/\\.hei[cf]$/i, '') + '.jpg';
    return new File([blob], name, { type: 'image/jpeg' });
  }

  // ── Previews: downscaled JPEG data URLs, small enough for localStorage ──
  function makePreview(file) {
    return new Promise((resolve, reject) => {
      const url = URL.createObjectURL(file);
      const img = new Image();
      img.onload = () => {
        const scale  = Math.min(1, PREVIEW_MAX_SIDE / Math.max(img.width, img.height));
        const canvas = document.createElement('canvas');
        canvas.width  = Math.round(img.width * scale);
        canvas.height = Math.round(img.height * scale);
        const ctx = canvas.getContext('2d');
        ctx.fillStyle = '#fff';
        ctx.fillRect(0, 0, canvas.width, canvas.height);
        ctx.drawImage(img, 0, 0, canvas.width, canvas.height);
        URL.revokeObjectURL(url);
        resolve(canvas.toDataURL('image/jpeg', PREVIEW_QUALITY));
      };
      img.onerror = () => { URL.revokeObjectURL(url); reject(new Error('Imagem inválida: ' + file.name)); };
      img.src = url;
    });
  }

  function fileToDataUrl(file) {
    return new Promise((resolve, reject) => {
      const reader = new FileReader();
      reader.onload  = () => resolve(reader.result);
      reader.onerror = () => reject(reader.error);
      reader.readAsDataURL(file);
    });
  }

  // ── Draft persistence ──
  function saveDraft() {
    localStorage.setItem(KEY_TITLE, titleInput.value);
    localStorage.setItem(KEY_SPONSOR, sponsorInput.value);
    const withPreviews = items.map(it => ({ id: it.id, preview: it.preview, caption: it.caption }));
    try {
      if (coverDataUrl) localStorage.setItem(KEY_COVER, coverDataUrl);
      else localStorage.removeItem(KEY_COVER);
      localStorage.setItem(KEY_ITEMS, JSON.stringify(withPreviews));
    } catch (err) {
      // Quota exceeded: keep the captions, drop the binaries
      localStorage.removeItem(KEY_COVER);
      const captionsOnly = items.map(it => ({ id: it.id, preview: null, caption: it.caption }));
      localStorage.setItem(KEY_ITEMS, JSON.stringify(captionsOnly));
    }
  }

  function clearDraft() {
    [KEY_TITLE, KEY_SPONSOR, KEY_COVER, KEY_ITEMS].forEach(k => localStorage.removeItem(k));
  }

  function loadDraft() {
    titleInput.value   = localStorage.getItem(KEY_TITLE) || '';
    sponsorInput.value = localStorage.getItem(KEY_SPONSOR) || '';

    const savedCover = localStorage.getItem(KEY_COVER);
    if (savedCover) {
      coverPreview.src = savedCover;
      coverPreview.classList.remove('hidden');
      coverHint.classList.remove('hidden');
    }

    let saved = [];
    try { saved = JSON.parse(localStorage.getItem(KEY_ITEMS) || '[]'); } catch (err) { saved = []; }
    items = saved.map(s => ({ id: s.id || newId(), file: null, preview: s.preview || null, caption: s.caption || '' }));
    renderItems();
  }

  // ── Rendering ──
  function renderItems() {
    itemsEl.innerHTML = '';
    itemsCard.classList.toggle('hidden', items.length === 0);

    items.forEach((item, index) => {
      const card = document.createElement('div');
      card.className = 'item';

      if (item.preview) {
        const img = document.createElement('img');
        img.src = item.preview;
        img.alt = 'Preview ' + (index + 1);
        card.appendChild(img);
      } else {
        const missing = document.createElement('div');
        missing.className = 'missing';
        missing.textContent = 'Imagem não recuperada do rascunho. Selecione o arquivo novamente.';
        card.appendChild(missing);
      }

      const captionWrap = document.createElement('div');
      captionWrap.className = 'caption';
      const caption = document.createElement('input');
      caption.type = 'text';
      caption.placeholder = 'Local';
      caption.value = item.caption;
      caption.addEventListener('input', e => {
        item.caption = e.target.value;
        saveDraft();
      });
      captionWrap.appendChild(caption);

      if (!item.file && !item.preview) {
        const repick = document.createElement('input');
        repick.type = 'file';
        repick.className = 'repick';
        repick.accept = proofInput.accept;
        repick.addEventListener('change', async e => {
          if (!e.target.files[0]) return;
          try {
            item.file    = await normalizeFile(e.target.files[0]);
            item.preview = await makePreview(item.file);
            saveDraft();
            renderItems();
          } catch (err) {
            setStatus('Erro: ' + err.message, 'error');
          }
        });
        captionWrap.appendChild(repick);
      }
      card.appendChild(captionWrap);

      const del = document.createElement('button');
      del.type = 'button';
      del.className = 'delete';
      del.textContent = 'X';
      del.setAttribute('aria-label', 'Deletar imagem');
      del.addEventListener('click', () => {
        items.splice(index, 1);
        saveDraft();
        renderItems();
      });
      card.appendChild(del);

      itemsEl.appendChild(card);
    });

    updateSubmit();
  }

  function updateSubmit() {
    submitBtn.disabled = loading || items.length === 0;
    submitBtn.innerHTML = loading
      ? '<span class="spinner"></span>Gerando PDF...'
      : 'Gerar PDF de Comprovação';
  }

  // ── Inputs ──
  titleInput.addEventListener('input', saveDraft);
  sponsorInput.addEventListener('input', saveDraft);

  coverInput.addEventListener('change', async () => {
    if (!coverInput.files[0]) return;
    try {
      coverFile    = await normalizeFile(coverInput.files[0]);
      coverDataUrl = await makePreview(coverFile);
      coverPreview.src = coverDataUrl;
      coverPreview.classList.remove('hidden');
      coverHint.classList.add('hidden');
      saveDraft();
    } catch (err) {
      setStatus('Erro: ' + err.message, 'error');
    }
  });

  proofInput.addEventListener('change', async () => {
    const picked = Array.from(proofInput.files);
    proofInput.value = '';
    setStatus(picked.length ? 'Processando imagens...' : '');
    try {
      for (const raw of picked) {
        const file = await normalizeFile(raw);
        items.push({ id: newId(), file, preview: await makePreview(file), caption: '' });
      }
      setStatus('');
    } catch (err) {
      setStatus('Erro: ' + err.message, 'error');
    }
    saveDraft();
    renderItems();
  });

  clearDraftBtn.addEventListener('click', () => {
    clearDraft();
    coverFile = null;
    coverDataUrl = null;
    coverInput.value = '';
    coverPreview.classList.add('hidden');
    coverHint.classList.add('hidden');
    titleInput.value = '';
    sponsorInput.value = '';
    items = [];
    renderItems();
    setStatus('');
  });

  // ── Submit ──
  async function buildFormData() {
    const formData = new FormData();
    formData.append('projectTitle', titleInput.value);
    formData.append('sponsor', sponsorInput.value);
    formData.append('coverImage', coverFile);

    // Items restored from a draft have no File; send everything as savedItems
    // so the server sees them in the same order as the screen.
    if (items.some(it => !it.file)) {
      const saved = [];
      for (const it of items) {
        const b64 = it.file ? await fileToDataUrl(it.file) : it.preview;
        saved.push({ id: it.id, fileBase64: b64, title: it.caption });
      }
      formData.append('savedItems', JSON.stringify(saved));
    } else {
      items.forEach(it => {
        formData.append('proof_files', it.file);
        formData.append('titles', it.caption);
      });
    }
    return formData;
  }

  async function downloadResponse(res) {
    const blob = await res.blob();
    const name = res.headers.get('X-Suggested-Filename') || 'comprovacao.pdf';
    const url  = URL.createObjectURL(blob);
    const a    = document.createElement('a');
    a.href     = url;
    a.download = name;
    document.body.appendChild(a);
    a.click();
    a.remove();
    URL.revokeObjectURL(url);
    return name;
  }

  form.addEventListener('submit', async e => {
    e.preventDefault();
    if (!coverFile) { setStatus('Por favor, adicione uma imagem de capa.', 'error'); return; }
    if (items.length === 0) { setStatus('Por favor, adicione ao menos uma imagem de comprovação.', 'error'); return; }
    if (items.some(it => !it.file && !it.preview)) {
      setStatus('Selecione novamente as imagens que não foram recuperadas do rascunho.', 'error');
      return;
    }

    loading = true;
    updateSubmit();
    setStatus('');
    try {
      const res = await fetch('/api/generate-pdf', { method: 'POST', body: await buildFormData() });
      if (!res.ok) {
        let message = 'Falha ao gerar o PDF';
        try { message = (await res.json()).error || message; } catch (err) { /* not JSON */ }
        throw new Error(message);
      }
      const name = await downloadResponse(res);
      clearDraft();
      setStatus('PDF gerado: ' + name, 'ok');
    } catch (err) {
      console.error(err);
      setStatus('Ocorreu um erro: ' + err.message, 'error');
    } finally {
      loading = false;
      updateSubmit();
    }
  });

  loadDraft();
</script>
</body>
</html>"""


@app.route("/")
def index():
    return render_template_string(HTML)


@app.route("/health")
def health():
    return jsonify({"status": "ok"})


@app.errorhandler(413)
def too_large(e):
    limit_mb = app.config["MAX_CONTENT_LENGTH"] // (1024 * 1024)
    return jsonify({"error": f"Arquivos muito grandes. Limite de {limit_mb} MB por envio."}), 413


@app.route("/api/generate-pdf", methods=["POST"])
def generate_pdf():
    try:
        report    = parse_report_request(request.form, request.files)
        signature = read_signature(app.config["SIGNATURE_PATH"])
        pdf_bytes = build_report_pdf(report, signature, jpeg_quality=app.config["JPEG_QUALITY"])
    except ReportValidationError as e:
        return jsonify({"error": str(e)}), 400
    except HTTPException:
        raise
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500

    filename = suggested_filename(report.project_title, report.sponsor)
    pages    = expected_page_count(len(report.proof_items), report.captions)
    print(f"Generated {filename}: {len(report.proof_items)} proof images, {pages} pages")

    response = Response(pdf_bytes, mimetype="application/pdf")
    response.headers["Content-Disposition"]           = f'attachment; filename="{filename}"'
    response.headers["X-Suggested-Filename"]          = filename
    response.headers["Access-Control-Expose-Headers"] = "X-Suggested-Filename"
    return response


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    print(f"Starting server at http://localhost:{port}")
    print(f"Signature: {SIGNATURE_PATH}")
    if not os.path.exists(SIGNATURE_PATH):
        print("WARNING: Signature image not found; every report request will fail until it exists")
    debug = os.environ.get("FLASK_DEBUG") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
