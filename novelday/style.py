"""支配的な文体スタイルの推定。"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Optional

from novelday.records import SourceEntry


def infer_dominant_style(entries: Iterable[SourceEntry]) -> Optional[str]:
    """
    期間内の entries から、もっとも頻出した文体スタイルを返す。

    - style は前後の空白を除いて数える（空は数えない）
    - 同数の場合はタグの辞書順で先頭のものを選ぶ（entries の並び順に依存しない）
    - style が1つもなければ None
    """
    counter: Counter[str] = Counter()
    for e in entries:
        key = str(e.style or "").strip()
        if key:
            counter[key] += 1

    if not counter:
        return None

    ranked = sorted(counter.items(), key=lambda kv: kv[0])
    ranked.sort(key=lambda kv: kv[1], reverse=True)
    return ranked[0][0]
