"""Keyword tables behind the category, sentiment and relevance heuristics.

Every entry is lowercase; matching is case-insensitive and word-bounded, so
short triggers such as "eth" or "sec" do not fire inside longer words.
Vietnamese entries sit next to English ones because the deployment publishes
for a Vietnamese audience from mostly English feeds.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Tuple

STOP_WORDS: FrozenSet[str] = frozenset(
    {
        # English
        "a", "an", "the", "and", "but", "or", "as", "is", "are", "was", "were", "be",
        "being", "been", "have", "has", "had", "do", "does", "did", "will", "would",
        "shall", "should", "can", "could", "may", "might", "must", "for", "of", "to",
        "in", "on", "by", "at", "from", "with", "about", "against", "between", "into",
        "through", "during", "before", "after", "above", "below", "up", "down", "out",
        "off", "over", "under", "again", "further", "then", "once", "here", "there",
        "when", "where", "why", "how", "all", "any", "both", "each", "few", "more",
        "most", "other", "some", "such", "no", "nor", "not", "only", "own", "same",
        "so", "than", "too", "very", "just", "this", "that", "these", "those", "now",
        "ever", "also", "even", "still", "its", "it's", "their", "they", "them",
        "which", "while", "who", "whom", "what", "said", "says", "our", "you", "your",
        # Vietnamese
        "và", "hoặc", "trong", "ngoài", "của", "từ", "với", "cho", "bởi", "về", "như",
        "là", "có", "được", "không", "những", "các", "một", "để", "đã", "sẽ", "đang",
        "vào", "ra", "khi", "trên", "dưới", "nhưng", "lúc", "này", "cùng", "thêm",
        "vậy", "đâu", "sao", "đến", "đó", "nhiều", "tại", "nên", "cần", "rồi", "thì",
        "mà", "nếu", "vì", "nơi", "làm", "thế", "vẫn", "dù", "đây", "sau", "hơn",
        "cũng", "theo", "người", "năm",
    }
)

# Category -> trigger keywords. Dict order is the tie-break order.
CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "bitcoin": ("bitcoin", "btc", "satoshi", "nakamoto", "halving", "mining"),
    "ethereum": (
        "ethereum",
        "eth",
        "vitalik",
        "buterin",
        "gwei",
        "solidity",
        "gas",
        "smart contract",
    ),
    "altcoin": (
        "altcoin",
        "altcoins",
        "litecoin",
        "cardano",
        "solana",
        "polkadot",
        "dogecoin",
        "doge",
    ),
    "defi": (
        "defi",
        "decentralized finance",
        "yield",
        "farming",
        "liquidity",
        "swap",
        "dex",
        "amm",
        "dao",
        "lending",
        "staking",
        "aave",
    ),
    "nft": ("nft", "nfts", "non-fungible", "collectible", "opensea", "metaverse"),
    "blockchain": (
        "blockchain",
        "distributed ledger",
        "consensus",
        "node",
        "nodes",
        "layer 1",
        "layer 2",
    ),
    "regulation": (
        "regulation",
        "regulator",
        "law",
        "legal",
        "government",
        "tax",
        "compliance",
        "sec",
        "cftc",
        "quy định",
        "pháp luật",
    ),
    "market": (
        "market",
        "price",
        "chart",
        "analysis",
        "prediction",
        "bull",
        "bear",
        "trading",
        "exchange",
        "futures",
    ),
    "tech": ("technology", "protocol", "scaling", "upgrade", "fork"),
}

POSITIVE_WORDS: Tuple[str, ...] = (
    # English
    "good", "great", "excellent", "positive", "bull", "bullish", "rally", "surge",
    "soar", "gain", "gains", "increase", "profit", "success", "successful",
    "uptrend", "grow", "growth", "opportunity", "promising", "boost", "improve",
    "improvement", "optimistic", "recover", "recovery", "rise", "rising", "win",
    "breakthrough", "adoption", "advantage", "record high",
    # Vietnamese
    "tăng", "tăng trưởng", "lợi nhuận", "tích cực", "thành công", "lạc quan",
    "đột phá", "hồi phục", "phục hồi", "phát triển", "tiến bộ", "vững mạnh",
    "tiềm năng", "cơ hội", "ổn định", "tốt", "tuyệt vời", "khả quan", "cải thiện",
)

NEGATIVE_WORDS: Tuple[str, ...] = (
    # English
    "bad", "poor", "negative", "bear", "bearish", "crash", "decline", "decrease",
    "dip", "downtrend", "drop", "fall", "falling", "fear", "fud", "loss", "lose",
    "risk", "risky", "selloff", "struggle", "tumble", "uncertainty", "unstable",
    "volatile", "vulnerability", "weak", "worry", "worried", "concern", "threat",
    "hack", "exploit", "scam", "fraud",
    # Vietnamese
    "giảm", "thua lỗ", "tiêu cực", "suy thoái", "thất bại", "bi quan", "sụp đổ",
    "khủng hoảng", "rủi ro", "đe dọa", "lo ngại", "hoài nghi", "bất ổn", "sụt",
    "xấu", "đáng lo", "bất lợi",
)

TRUSTED_SOURCES: Tuple[str, ...] = (
    "CoinDesk",
    "Cointelegraph",
    "The Block",
    "Bloomberg",
    "Reuters",
    "Bitcoin Magazine",
    "Decrypt",
    "Binance",
    "CNBC",
    "Forbes",
)

HIGH_PRIORITY_CATEGORIES: Tuple[str, ...] = ("bitcoin", "ethereum", "market", "regulation")

# Reader-facing wording for each sentiment label.
SENTIMENT_LABELS: Dict[str, str] = {
    "positive": "a positive outlook",
    "negative": "a cautious, negative outlook",
    "neutral": "a balanced, neutral outlook",
}
