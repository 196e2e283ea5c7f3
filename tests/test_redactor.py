"""Tests for structural + custom-term redaction."""

import pytest

from clarity_signals import redactor as R
from clarity_signals.redactor import MatchKind, RedactionMatch, Redactor, find_matches, luhn_valid, redact


def _digits(s):
    return [int(c) for c in s if c.isdigit()]


class TestEndToEnd:
    """Whole-pipeline redaction of realistic entries."""

    def test_card_and_email(self):
        res = redact("My card is 4111 1111 1111 1111 and my email is a@b.com")
        assert res.redacted_text == "My card is [CARD] and my email is [EMAIL]"
        assert res.did_redact is True

    def test_plain_text_untouched(self):
        text = "Walked the dog, felt calmer after lunch."
        res = redact(text)
        assert res.redacted_text == text
        assert res.did_redact is False

    def test_empty_input(self):
        res = redact("")
        assert res.redacted_text == ""
        assert res.did_redact is False

    @pytest.mark.parametrize("text", [
        "My card is 4111 1111 1111 1111 and my email is a@b.com",
        "Call me on +44 7700 900123 or at 07700 900123 tonight",
        "Sort code: 12-34-56, account number 12345678",
        "My NI number is AB123456C and postcode SW1A 1AA",
        "IBAN GB82 WEST 1234 5698 7654 32 please",
    ])
    def test_redaction_is_idempotent(self, text):
        once = redact(text).redacted_text
        assert redact(once).redacted_text == once

    def test_failure_returns_original_unflagged(self, monkeypatch):
        def boom(*_a, **_k):
            raise RuntimeError("detector blew up")

        monkeypatch.setattr(R, "find_matches", boom)
        res = redact("email me at someone@example.com")
        assert res.redacted_text == "email me at someone@example.com"
        assert res.did_redact is False


class TestCards:
    """Luhn gating and keyword-window fallback."""

    def test_luhn_known_values(self):
        assert luhn_valid(_digits("4111111111111111"))
        assert not luhn_valid(_digits("4111111111111112"))
        assert not luhn_valid([])

    def test_valid_card_without_keyword(self):
        assert redact("ref 4111111111111111 ok").redacted_text == "ref [CARD] ok"

    def test_invalid_card_near_keyword_is_maybe(self):
        assert redact("card 4111111111111112").redacted_text == "card [CARD?]"

    def test_invalid_card_without_keyword_left_alone(self):
        res = redact("ref 4111111111111112 ok")
        assert res.redacted_text == "ref 4111111111111112 ok"
        assert res.did_redact is False

    def test_keyword_outside_window_does_not_count(self):
        text = "card" + " " * 60 + "4111111111111112"
        assert "[CARD?]" not in redact(text).redacted_text


class TestStructuralDetectors:
    """One representative hit per detector family."""

    def test_email(self):
        assert redact("write to jo.bloggs+x@mail.example.co.uk").redacted_text == "write to [EMAIL]"

    def test_uk_mobile(self):
        assert redact("ring 07700 900123 later").redacted_text == "ring [PHONE] later"

    def test_international_phone_after_space(self):
        assert redact("ring +44 20 7946 0958 later").redacted_text == "ring [PHONE] later"

    def test_long_spaced_phone_is_one_span(self):
        assert redact("call +44 1 2 3 4 5 6 7 now").redacted_text == "call [PHONE] now"

    def test_postcode(self):
        assert redact("I live near SW1A 1AA now").redacted_text == "I live near [POSTCODE] now"

    def test_labelled_sort_code_and_account(self):
        out = redact("sort code 12-34-56 and account number 12345678").redacted_text
        assert out == "sort code [SORTCODE] and account number [ACCOUNT]"

    def test_nino(self):
        assert redact("NI AB123456C").redacted_text == "NI [NINO]"

    def test_labelled_utr(self):
        assert redact("my UTR is 1234567890").redacted_text == "my UTR is [UTR]"

    def test_labelled_vat(self):
        assert redact("VAT number GB123456789").redacted_text == "VAT number GB[VAT]"

    def test_compact_iban(self):
        assert redact("pay GB82WEST12345698765432 today").redacted_text == "pay [IBAN] today"

    def test_spaced_iban_keeps_trailing_words(self):
        assert redact("IBAN GB82 WEST 1234 5698 7654 32 please").redacted_text == "IBAN [IBAN] please"

    def test_labelled_bic(self):
        assert redact("BIC: NWBKGB2L thanks").redacted_text == "BIC: [BIC] thanks"

    def test_bic_stops_at_the_code(self):
        assert redact("SWIFT code is NWBKGB2L and then some").redacted_text == "SWIFT code is [BIC] and then some"

    def test_swift_as_an_adjective_is_not_a_label(self):
        text = "I made a swift decision today"
        assert redact(text).redacted_text == text

    def test_bic_needs_a_label(self):
        assert redact("code NWBKGB2L").redacted_text == "code NWBKGB2L"

    def test_spaced_iban_rejects_ordinary_words(self):
        text = "Flight BA12 departs tomorrow at 9 sharp"
        res = redact(text)
        assert res.redacted_text == text
        assert res.did_redact is False

    def test_bare_digits_are_not_an_account(self):
        assert redact("ticket 12345678 issued").redacted_text == "ticket 12345678 issued"

    def test_account_number_too_short(self):
        assert redact("account 12345").redacted_text == "account 12345"

    def test_bare_sort_code(self):
        assert redact("paid into 12-34-56 yesterday").redacted_text == "paid into [SORTCODE] yesterday"


class TestOverlapPriority:
    """Higher MatchKind wins, whatever the candidate order."""

    def test_priority_independent_of_order(self):
        phone = RedactionMatch(0, 10, MatchKind.PHONE)
        email = RedactionMatch(5, 15, MatchKind.EMAIL)
        assert R.resolve_overlaps([phone, email]) == [email]
        assert R.resolve_overlaps([email, phone]) == [email]

    def test_accepted_matches_never_overlap(self):
        text = "card 4111 1111 1111 1111, +44 7700 900123, a@b.com, 12-34-56, SW1A 1AA"
        spans = [m.span for m in find_matches(text)]
        for i, a in enumerate(spans):
            for b in spans[i + 1:]:
                assert not (a[0] < b[1] and b[0] < a[1])

    def test_matches_returned_in_start_order(self):
        found = find_matches("a@b.com then 07700 900123")
        assert [m.kind for m in found] == [MatchKind.EMAIL, MatchKind.PHONE]


class TestCustomTerms:
    """User dictionary terms."""

    def test_whole_word_case_insensitive(self):
        res = redact("Met ALICE and Alicea at Acme", ["alice", "acme"])
        assert res.redacted_text == "Met [CUSTOM] and Alicea at [CUSTOM]"

    def test_longest_term_wins(self):
        assert redact("at Acme Corp today", ["Acme", "Acme Corp"]).redacted_text == "at [CUSTOM] today"

    def test_structural_match_beats_custom_term(self):
        out = redact("mail alice@example.com", ["alice"]).redacted_text
        assert out == "mail [EMAIL]"

    def test_term_equal_to_label_word_is_stable(self):
        once = redact("my email a@b.com", ["email"]).redacted_text
        assert once == "my [CUSTOM] [EMAIL]"
        assert redact(once, ["email"]).redacted_text == once

    def test_blank_terms_ignored(self):
        assert redact("nothing here", ["", "   "]).did_redact is False

    def test_redactor_binds_terms(self):
        assert Redactor(["Bob"]).redact("bob said hi").redacted_text == "[CUSTOM] said hi"
