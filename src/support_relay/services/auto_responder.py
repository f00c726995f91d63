"""Rule-based automated replies used while no staff member owns a conversation."""
from __future__ import annotations

import random
import re
import unicodedata
from collections.abc import Callable, Sequence
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class StoreContext:
    name: str
    hotline: str
    zalo: str


@dataclass(frozen=True, slots=True)
class ResponseRule:
    name: str
    patterns: tuple[re.Pattern[str], ...]
    reply: Callable[[StoreContext], str]

    def matches(self, text: str) -> bool:
        return any(p.search(text) for p in self.patterns)


def _rule(name: str, pattern: str, reply: Callable[[StoreContext], str]) -> ResponseRule:
    return ResponseRule(name, (re.compile(pattern, re.IGNORECASE),), reply)


DEFAULT_RULES: tuple[ResponseRule, ...] = (
    _rule(
        "greeting",
        r"xin chào|chào|\b(hello|hi|hey)\b",
        lambda s: (
            f"Xin chào! Chào mừng bạn đến với {s.name}! Tôi là trợ lý ảo, "
            "sẵn sàng hỗ trợ bạn 24/7. Bạn cần tư vấn về sản phẩm nào ạ?"
        ),
    ),
    _rule(
        "price",
        r"giá|bao nhiêu|chi phí|\b(cost|price)\b",
        lambda s: (
            "Giá sản phẩm của chúng tôi rất đa dạng:\n\n"
            "• Hoa bó: từ 200.000đ - 2.000.000đ\n"
            "• Hoa cưới: từ 500.000đ - 5.000.000đ\n"
            "• Mâm quả: từ 800.000đ - 3.000.000đ\n\n"
            'Bạn có thể xem chi tiết tại mục "Sản Phẩm" hoặc cho tôi biết loại hoa bạn quan tâm!'
        ),
    ),
    _rule(
        "contact",
        r"liên hệ|số điện thoại|hotline|zalo|\b(contact|phone)\b",
        lambda s: (
            "Thông tin liên hệ:\n\n"
            f"• Hotline: {s.hotline}\n"
            f"• Zalo: {s.zalo}\n\n"
            "Bạn có thể gọi trực tiếp hoặc nhắn Zalo, chúng tôi sẽ phản hồi ngay!"
        ),
    ),
    _rule(
        "delivery",
        r"giao hàng|vận chuyển|freeship|\b(delivery|ship|shipping)\b",
        lambda s: (
            "Chính sách giao hàng:\n\n"
            "• Giao hàng nhanh trong 2-4 giờ nội thành\n"
            "• Miễn phí giao hàng đơn từ 500.000đ\n"
            "• Giao tận nơi, cẩn thận\n"
            "• Hỗ trợ giao gấp trong ngày"
        ),
    ),
    _rule(
        "wedding_flowers",
        r"hoa cưới|cưới|dam cuoi|\bwedding\b",
        lambda s: (
            "Dịch vụ Hoa Cưới cao cấp:\n\n"
            "• Hoa cầm tay cô dâu\n"
            "• Hoa cài áo chú rể\n"
            "• Hoa trang trí xe hoa\n"
            "• Hoa bàn tiệc\n"
            "• Cổng hoa, backdrop\n\n"
            "Đặc biệt: Tư vấn miễn phí theo concept cưới!"
        ),
    ),
    _rule(
        "wedding_trays",
        r"mâm quả|tráp|lễ ăn hỏi|dam hoi",
        lambda s: (
            "Dịch vụ Mâm Quả Cưới:\n\n"
            "• Mâm quả truyền thống 6-12 tráp\n"
            "• Mâm quả hiện đại, sang trọng\n"
            "• Trang trí theo yêu cầu\n"
            "• Cho thuê quả & phụ kiện\n\n"
            "Cam kết: Quả tươi ngon, trang trí đẹp mắt!"
        ),
    ),
    _rule(
        "payment",
        r"thanh toán|trả tiền|chuyển khoản|\bpayment\b",
        lambda s: (
            "Phương thức thanh toán:\n\n"
            "• Tiền mặt khi nhận hàng (COD)\n"
            "• Chuyển khoản ngân hàng\n"
            "• Ví điện tử (MoMo, ZaloPay)\n\n"
            "An toàn & tiện lợi!"
        ),
    ),
    _rule(
        "ordering",
        r"đặt hàng|đặt mua|mua|\border\b",
        lambda s: (
            "Cách đặt hàng:\n\n"
            "1. Chọn sản phẩm yêu thích\n"
            "2. Thêm vào giỏ hàng\n"
            "3. Điền thông tin giao hàng\n"
            "4. Xác nhận & thanh toán\n\n"
            f"Hoặc gọi Hotline {s.hotline} để đặt hàng nhanh!"
        ),
    ),
    _rule(
        "thanks",
        r"cảm ơn|\b(thank|thanks)\b",
        lambda s: (
            f"Cảm ơn bạn đã quan tâm đến {s.name}! Nếu cần hỗ trợ thêm, "
            "đừng ngại nhắn tin cho tôi nhé. Chúc bạn một ngày tuyệt vời!"
        ),
    ),
)

DEFAULT_FALLBACKS: tuple[Callable[[StoreContext], str], ...] = (
    lambda s: (
        "Cảm ơn bạn đã liên hệ! Để được tư vấn chi tiết hơn, bạn có thể:\n\n"
        f"• Gọi Hotline: {s.hotline}\n"
        f"• Nhắn Zalo: {s.zalo}\n\n"
        "Hoặc cho tôi biết bạn quan tâm đến sản phẩm nào?"
    ),
    lambda s: (
        "Tôi hiểu bạn cần hỗ trợ! Bạn có thể hỏi về:\n\n"
        "• Sản phẩm & giá cả\n"
        "• Dịch vụ hoa cưới\n"
        "• Giao hàng & thanh toán\n\n"
        "Hãy cho tôi biết thêm chi tiết nhé!"
    ),
)


def normalize(text: str) -> str:
    # Vietnamese input may arrive decomposed (NFD) from some keyboards.
    return unicodedata.normalize("NFC", text).lower()


class AutoResponder:
    """Stateless responder: the reply depends only on the latest message text."""

    def __init__(
        self,
        store: StoreContext,
        rules: Sequence[ResponseRule] = DEFAULT_RULES,
        fallbacks: Sequence[Callable[[StoreContext], str]] = DEFAULT_FALLBACKS,
        rng: random.Random | None = None,
    ) -> None:
        if not fallbacks:
            raise ValueError("at least one fallback reply is required")
        self._store = store
        self._rules = tuple(rules)
        self._fallbacks = tuple(fallbacks)
        self._rng = rng or random.Random()

    def match(self, text: str) -> ResponseRule | None:
        """First rule, in priority order, that accepts ``text``."""
        lowered = normalize(text)
        for rule in self._rules:
            if rule.matches(lowered):
                return rule
        return None

    def respond(self, text: str) -> str:
        rule = self.match(text)
        if rule is not None:
            return rule.reply(self._store)
        return self._rng.choice(self._fallbacks)(self._store)

    def greeting(self) -> str:
        return (
            f"Xin chào! Tôi là trợ lý ảo của {self._store.name}.\n\n"
            "Tôi có thể giúp bạn:\n"
            "• Tư vấn sản phẩm\n"
            "• Thông tin giá cả\n"
            "• Hướng dẫn đặt hàng\n\n"
            "Bạn cần hỗ trợ gì ạ?"
        )
