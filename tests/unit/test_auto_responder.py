from __future__ import annotations

import random
import unicodedata

import pytest

from support_relay.services.auto_responder import AutoResponder, StoreContext
from tests.conftest import STORE


@pytest.fixture
def responder() -> AutoResponder:
    return AutoResponder(STORE, rng=random.Random(1))


@pytest.mark.parametrize(
    ("text", "rule"),
    [
        ("Xin chào shop", "greeting"),
        ("hello", "greeting"),
        ("Mâm quả bao nhiêu tiền?", "price"),
        ("cho mình số hotline", "contact"),
        ("Có freeship không?", "delivery"),
        ("Tư vấn hoa cưới giúp mình", "wedding_flowers"),
        ("Mình cần 8 tráp", "wedding_trays"),
        ("chuyển khoản được không", "payment"),
        ("Mình muốn đặt hàng", "ordering"),
        ("Cảm ơn nhé", "thanks"),
    ],
)
def test_match_picks_rule(responder, text, rule):
    assert responder.match(text).name == rule


def test_earlier_rule_wins(responder):
    # Greeting is checked before price.
    assert responder.match("Chào shop, giá hoa cưới?").name == "greeting"


def test_word_boundary_for_english_keywords(responder):
    assert responder.match("this is nothing") is None


def test_decomposed_input_is_normalized(responder):
    text = unicodedata.normalize("NFD", "Cảm ơn")
    assert responder.match(text).name == "thanks"


def test_contact_reply_uses_store_context(responder):
    reply = responder.respond("zalo?")
    assert STORE.hotline in reply
    assert STORE.zalo in reply


def test_fallback_when_nothing_matches(responder):
    reply = responder.respond("asdfgh")
    assert reply
    assert responder.match("asdfgh") is None


def test_greeting_mentions_store_name(responder):
    assert STORE.name in responder.greeting()


def test_fallbacks_required():
    with pytest.raises(ValueError):
        AutoResponder(StoreContext("x", "y", "z"), fallbacks=())
