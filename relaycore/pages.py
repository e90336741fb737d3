"""HTML pages for pay-to-relay sign-up: join form, invoice and account status."""

from __future__ import annotations

from html import escape
from urllib.parse import quote

_STYLE = """
    body {
      background-color: #6320a7;
      color: white;
      font-family: system-ui, sans-serif;
      margin: 0;
    }
    a { color: pink; }
    .container { max-width: 36rem; margin: 0 auto; padding: 3rem 1rem; }
    .center { text-align: center; }
    .field { margin: 1rem 0; }
    input[type=text] { width: 100%; box-sizing: border-box; padding: 0.5rem; }
    .btn {
      display: block;
      width: 100%;
      padding: 0.6rem;
      margin-top: 0.6rem;
      border: none;
      color: white;
      background-color: #ff4081;
      cursor: pointer;
    }
    .btn:hover { background-color: #8f29f4; }
    .invoice { overflow-wrap: break-word; }
    .qr { max-height: 300px; }
    .full-height {
      display: flex;
      height: 100vh;
      align-items: center;
      justify-content: center;
    }
"""


def _document(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '  <meta charset="utf-8">\n'
        '  <meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"  <style>{_STYLE}  </style>\n"
        f"  <title>{escape(title)}</title>\n"
        "</head>\n"
        "<body>\n"
        f"{body}\n"
        "</body>\n"
        "</html>\n"
    )


_JOIN_BODY = """<div class="container">
  <h1 class="center">Enter your pubkey</h1>
  <form action="/invoice" onsubmit="return checkForm(this);">
    <div class="field">
      <input type="text" name="pubkey" id="pubkey-input" placeholder="Public Key" required>
    </div>
    <div class="field">
      <input type="checkbox" id="terms" required>
      <label for="terms">I agree to the <a href="/terms">terms and conditions</a></label>
    </div>
    <div class="field">
      <button type="submit" class="btn">Submit</button>
    </div>
  </form>
  <button id="get-public-key-btn" class="btn">Get Public Key</button>
</div>
<script>
  function checkForm(form) {
    if (!form.terms.checked) {
      alert("Please agree to the terms and conditions");
      return false;
    }
    return true;
  }
  document.getElementById("get-public-key-btn").addEventListener("click", async function () {
    try {
      const publicKey = await window.nostr.getPublicKey();
      document.getElementById("pubkey-input").value = publicKey;
    } catch (error) {
      console.error(error);
    }
  });
</script>"""


def join_page() -> str:
    """The sign-up form asking for a public key and agreement to the terms."""
    return _document("Join Nostr - Enter your pubkey", _JOIN_BODY)


_COPY_SCRIPT = """<script>
  const copyButton = document.getElementById("copy-button");
  const textArea = document.getElementById("text-area");
  if (navigator.clipboard) {
    copyButton.addEventListener("click", function () {
      navigator.clipboard.writeText(textArea.textContent).then(
        function () { console.log("Text copied to clipboard"); },
        function (err) { console.error("Could not copy text: ", err); }
      );
    });
  } else {
    copyButton.style.display = "none";
    console.warn("Clipboard API is not supported in this browser");
  }
</script>"""


def invoice_page(admission_cost: int, qr_markup: str, bolt11: str, pubkey: str) -> str:
    """The page showing the admission invoice for ``pubkey``.

    ``qr_markup`` is inserted as-is (it is expected to be SVG or a plain
    message); the invoice text and public key are escaped.
    """
    account_link = "/account?pubkey=" + quote(pubkey, safe="")
    body = (
        '<div class="container">\n'
        '  <h3 class="center">\n'
        f"    To use this relay, an admission fee of {admission_cost} sats is required."
        " By paying the fee, you agree to the <a href='terms'>terms</a>.\n"
        "  </h3>\n"
        f'  <div class="center qr">{qr_markup}</div>\n'
        '  <div class="center">\n'
        f'    <p id="text-area" class="invoice">{escape(bolt11)}</p>\n'
        '    <button id="copy-button" class="btn">Copy</button>\n'
        "  </div>\n"
        '  <div class="center">\n'
        "    <p>This page will not refresh</p>\n"
        f'    <p>Verify admission <a href="{escape(account_link)}">here</a>'
        " once you have paid</p>\n"
        "  </div>\n"
        "</div>\n"
        f"{_COPY_SCRIPT}"
    )
    return _document("Join Nostr - Invoice", body)


def _admission_text(admitted: bool | None) -> str:
    if admitted is None:
        return "Could not get admission status"
    if admitted:
        return '<span style="color: green;">is</span>'
    return '<span style="color: red;">is not</span>'


def account_page(pubkey: str, admitted: bool | None) -> str:
    """The page stating whether ``pubkey`` is admitted.

    ``admitted`` is ``None`` when the status could not be looked up.
    """
    body = (
        '<div class="full-height">\n'
        f"  <h5>{escape(pubkey)} {_admission_text(admitted)} admitted</h5>\n"
        "</div>"
    )
    return _document("Admissions", body)