"""Voucher access token signing."""

from voucherpay.services.vouchers import tokens


def test_sign_verify_round_trip():
    """A freshly signed token verifies."""

    token = tokens.sign("s3cret", "doc-1", "a@b.com")
    assert tokens.verify("s3cret", "doc-1", "a@b.com", token)


def test_any_single_character_flip_fails():
    """Changing any one character invalidates the token."""

    token = tokens.sign("s3cret", "doc-1", "a@b.com")
    for i, char in enumerate(token):
        flipped = token[:i] + ("0" if char != "0" else "1") + token[i + 1:]
        assert not tokens.verify("s3cret", "doc-1", "a@b.com", flipped)


def test_token_bound_to_doc_email_and_secret():
    """Tokens are bound to doc, e-mail and secret."""

    token = tokens.sign("s3cret", "doc-1", "a@b.com")
    assert not tokens.verify("s3cret", "doc-2", "a@b.com", token)
    assert not tokens.verify("s3cret", "doc-1", "c@d.com", token)
    assert not tokens.verify("rotated", "doc-1", "a@b.com", token)
    assert not tokens.verify("s3cret", "doc-1", "a@b.com", "")
