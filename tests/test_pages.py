from relaycore.pages import account_page, invoice_page, join_page

PUBKEY = "3bf0c63fcb93463407af97a5e5ee64fa883d107ef9e558472c4eb9aaaefa459d"


def test_join_page_form_posts_pubkey_to_invoice():
    page = join_page()
    assert page.startswith("<!DOCTYPE html>")
    assert 'action="/invoice"' in page
    assert 'name="pubkey"' in page
    assert 'href="/terms"' in page


def test_join_page_asks_for_terms_agreement():
    page = join_page()
    assert "Please agree to the terms and conditions" in page
    assert "window.nostr.getPublicKey()" in page
    assert page.rstrip().endswith("</html>")


def test_invoice_page_contains_cost_invoice_and_qr():
    qr = "<svg><rect/></svg>"
    page = invoice_page(4200, qr, "lnbc1invoicetext", PUBKEY)
    assert "an admission fee of 4200 sats is required" in page
    assert qr in page
    assert "lnbc1invoicetext" in page


def test_invoice_page_links_to_account_for_pubkey():
    page = invoice_page(1, "Could not render image", "lnbc1x", PUBKEY)
    assert f'href="/account?pubkey={PUBKEY}"' in page
    assert "Could not render image" in page


def test_invoice_page_escapes_invoice_text():
    page = invoice_page(1, "", "<b>x</b>", PUBKEY)
    assert "<b>x</b>" not in page
    assert "&lt;b&gt;x&lt;/b&gt;" in page


def test_account_page_admitted():
    page = account_page(PUBKEY, True)
    assert f'{PUBKEY} <span style="color: green;">is</span> admitted' in page
    assert "is not" not in page


def test_account_page_not_admitted():
    page = account_page(PUBKEY, False)
    assert f'{PUBKEY} <span style="color: red;">is not</span> admitted' in page


def test_account_page_unknown_status():
    page = account_page(PUBKEY, None)
    assert f"{PUBKEY} Could not get admission status admitted" in page


def test_account_page_escapes_pubkey():
    page = account_page("<script>", True)
    assert "<script>" not in page
    assert "&lt;script&gt;" in page