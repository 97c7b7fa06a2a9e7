"""
プロンプト管理

週/月まとめ章の system / user プロンプトを組み立てる。
入力（entries, persona, style, 期間種別）が同じなら常に同じ文字列になる。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from novelday.enums import PeriodKind
from novelday.records import Persona, SourceEntry


# --- 文体プロファイル ---

DEFAULT_VOICE = "soft"

VOICE_PROFILES: dict[str, str] = {
    "soft": "やわらか文学系・現代カジュアル・少しファンタジーの文体",
    "poetic": "詩的描写・夜の静けさ・やさしい日常の文体",
    "dramatic": "どこか切ない・前向きポジティブ・物語風ファンタジーの文体",
}

_VOICE_EXTRA: dict[str, str] = {
    "soft": "",
    "poetic": "情景描写や静けさ、余韻を大切にしてください。",
    "dramatic": "心の揺れやドラマ性を丁寧に描きながら、小さな希望が残るようにしてください。",
}

# A/B/C は日記側の文体選択と同じ記号
_STYLE_ALIASES: dict[str, str] = {
    "a": "soft",
    "soft": "soft",
    "b": "poetic",
    "poetic": "poetic",
    "c": "dramatic",
    "dramatic": "dramatic",
}


def resolve_voice(style: Optional[str]) -> str:
    """style タグを soft/poetic/dramatic のいずれかに解決する（不明なら soft）。"""
    key = str(style or "").strip().lower()
    return _STYLE_ALIASES.get(key, DEFAULT_VOICE)


# --- ログ整形 ---

LOG_CHAR_BUDGET = 8000
TRUNCATION_MARKER = "\n...(省略)"

_WS_RE = re.compile(r"\s+")


def _squash(text: Optional[str]) -> str:
    return _WS_RE.sub(" ", str(text or "")).strip()


def build_entry_log(entries: Sequence[SourceEntry]) -> str:
    """entries を1行1件のログにまとめる（空のメモ/本文は省く）。"""
    lines: list[str] = []
    for e in entries:
        parts = [f"日付: {e.display_date()}"]
        memo = _squash(e.memo)
        body = _squash(e.body)
        if memo:
            parts.append(f"メモ: {memo}")
        if body:
            parts.append(f"短編の一部: {body}")
        lines.append("- " + " / ".join(parts))
    return "\n".join(lines)


def truncate_log(log: str, budget: int = LOG_CHAR_BUDGET) -> str:
    """budget 文字を超えたら切り詰めて省略マーカーを付ける。"""
    if len(log) <= budget:
        return log
    return log[:budget] + TRUNCATION_MARKER


# --- 文字数の目安 ---

# (entries件数の上限, 下限文字数, 上限文字数)。上限 None は「それ以上すべて」。
LENGTH_TIERS: dict[PeriodKind, Tuple[Tuple[Optional[int], int, int], ...]] = {
    PeriodKind.WEEK: ((7, 400, 800), (20, 800, 1400), (None, 1200, 2000)),
    PeriodKind.MONTH: ((7, 2000, 3500), (20, 3500, 5500), (None, 5000, 7500)),
}


def length_band(kind: PeriodKind, entry_count: int) -> Tuple[int, int]:
    for limit, low, high in LENGTH_TIERS[kind]:
        if limit is None or entry_count <= limit:
            return low, high
    raise AssertionError("unreachable")


def build_length_hint(kind: PeriodKind, entry_count: int) -> str:
    low, high = length_band(kind, entry_count)
    return f"文字数の目安は {low}〜{high}字程度です。（多少前後しても構いません）"


# --- system プロンプト ---

_WEEKLY_SYSTEM_TAIL = (
    "ユーザーの1週間分のエピソードをもとに、『第○週 まとめ章』となる短い小説風テキストを書きます。"
    '出力は必ず JSON 形式で { "title": string, "body": string } のみを返してください。'
    "タイトルは詩的にしすぎず、ダッシュや副題を使わないでください。"
    "文章の段落は字下げせず、改行のみで統一してください。"
)

_MONTHLY_SYSTEM_TAIL = (
    "与えられた1ヶ月分の日記ログをもとに、ひとつの連続した短編小説を作ります。"
    '出力は必ず JSON 形式で { "title": string, "body": string } のみを返してください。'
    "文章の段落は字下げせず、行頭に全角スペース（「　」）などを入れないでください。改行のみで段落を区切ってください。"
)


def build_system_prompt(kind: PeriodKind, voice: str) -> str:
    """文体プロファイルに合わせた system プロンプト。"""
    voice = voice if voice in VOICE_PROFILES else DEFAULT_VOICE
    work = "短い章を書いていく作家です。" if kind is PeriodKind.WEEK else "短編小説を書く作家です。"
    tail = _WEEKLY_SYSTEM_TAIL if kind is PeriodKind.WEEK else _MONTHLY_SYSTEM_TAIL
    return f"あなたは日本語で、{VOICE_PROFILES[voice]}で{work}" + _VOICE_EXTRA[voice] + tail


# --- user プロンプト ---

_BACKGROUND_RULES = """
これらの情報は、その人の「暮らしの背景」や「心の置き場所」を考えるための手がかりとして使ってください。

- 日記の内容と自然につながる場合に限り、仕事・役割や背景メモに関係する描写を、さりげなく1回程度入れてください。
- 新しい具体的事実（特定の会社名・店名・人物名・出来事など）を勝手に付け加えてはいけません。
- 「コンビニのバイト」「ホテル清掃」「事務」など、誰でも連想できる一般的な行為（商品を並べる / レジを閉める / 部屋を整える / 画面を閉じる など）だけを、必要に応じて1〜2個まで描写してよいものとします。
""".strip()

_FORMAT_RULES = """
- 段落の先頭に全角スペースなどの字下げを入れず、行頭からそのまま書き始めてください。改行のみで段落を区切ってください。
- 「前に進んでいこう」「物語はまだ続いていく」などの紋切り型の前向きフレーズで締めくくらないでください。希望は行動や情景の描写からほのかに伝わる程度にとどめてください。
- 「ですます調」ではなく、「〜した」「〜だった」のような地の文で書いてください。
""".strip()

_WEEKLY_TITLE_RULE = "- タイトルにダッシュ（— / ― / —— / ーー / -）や詩的な副題は使わず、素朴で説明的なタイトルにしてください。"

_OUTPUT_FORMAT = """
出力は必ず JSON 形式で返してください。
以下の2つのキーだけを含めてください（余計なテキストは書かないこと）:

{"title": "タイトル", "body": "本文（改行込み）"}
""".strip()


def _persona_lines(persona: Persona) -> list[str]:
    if persona.display_name:
        name_line = f"- 名前: {persona.display_name}（無理に頻繁に出す必要はなく、時々さりげなく出す程度で構いません）"
    else:
        name_line = "- 名前: 特に指定しません。"
    occupation_line = (
        f"- 仕事・役割: {persona.occupation}（生活の背景や一日のリズムをイメージするためのヒントです）"
        if persona.occupation
        else "- 仕事・役割についての特別な指定はありません。"
    )
    context_line = (
        f"- 日常の背景メモ: {persona.free_context}"
        if persona.free_context
        else "- 日常の背景メモは特に指定されていません。"
    )
    return [
        "主人公の設定:",
        f"- 一人称: {persona.first_person}",
        name_line,
        "",
        f"本文は必ず一人称「{persona.first_person}」で最初から最後まで統一してください。",
        "他の語り手や三人称に変えないでください。",
        "",
        "参考情報（生活のヒント）:",
        occupation_line,
        context_line,
        "",
        _BACKGROUND_RULES,
    ]


def build_user_prompt(
    kind: PeriodKind,
    entries: Sequence[SourceEntry],
    persona: Persona,
) -> str:
    """entries・persona・文字数の目安・書式条件を含む user プロンプト。"""
    logs = truncate_log(build_entry_log(entries))
    length_hint = build_length_hint(kind, len(entries))

    if kind is PeriodKind.WEEK:
        intro = [
            "ユーザーの1週間分の日記ログをもとに、「第○週 まとめ章」を書いてください。",
            "",
            "1週間の要素として意識してほしいこと:",
            "- 先週の空気感（全体的にどんな1週間だったか）",
            "- 心のトーンの変化（落ち込み・回復・ちいさな喜びなど）",
            "- よく出てきた食べ物・キーワード・場面（駅・空・雨・コーヒーなど）",
        ]
        title_rules = [_WEEKLY_TITLE_RULE]
        log_heading = "対象の1週間のログは次の通りです:"
    else:
        intro = [
            "ある1ヶ月のあいだに書かれた日記ログをもとに、ひとつの連続した短編小説を書いてください。",
            "",
            "- 冒頭で「今月全体の空気感」を描き、",
            "- 中盤で印象的だった出来事や、心の揺れ・変化を織り込み、",
            "- 終盤で「この1ヶ月を少しだけ受け止めて、次の月へ進んでいく」ような余韻で締めてください。",
        ]
        title_rules = []
        log_heading = "対象の1ヶ月のログは次の通りです:"

    lines: list[str] = [
        *intro,
        "",
        *_persona_lines(persona),
        "",
        "条件:",
        f"- {length_hint}",
        "- 日記の具体的な出来事（食べ物、天気、人とのやりとりなど）を適度に拾いながら、ひとつの物語に再構成してください。",
        _FORMAT_RULES,
        *title_rules,
        "",
        _OUTPUT_FORMAT,
        "",
        log_heading,
        logs,
    ]
    return "\n".join(lines).strip()


@dataclass(frozen=True)
class ChapterPrompt:
    """1回の completion 要求。"""

    kind: PeriodKind
    voice: str
    system_prompt: str
    user_prompt: str
    response_fields: Tuple[str, ...] = ("title", "body")


def compose_chapter_prompt(
    entries: Sequence[SourceEntry],
    persona: Persona,
    style: Optional[str],
    kind: PeriodKind,
) -> ChapterPrompt:
    voice = resolve_voice(style)
    return ChapterPrompt(
        kind=kind,
        voice=voice,
        system_prompt=build_system_prompt(kind, voice),
        user_prompt=build_user_prompt(kind, entries, persona),
    )
