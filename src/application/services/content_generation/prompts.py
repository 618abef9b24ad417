"""Content Generation 模块提示词定义。"""

from __future__ import annotations

import json

SCOPE_OUTLINE_SEARCH = "content_generation:generate_outline_search"
SCOPE_OUTLINE = "content_generation:generate_outline"
SCOPE_ARTICLE_SECTION = "content_generation:generate_section"

_OUTLINE_SCHEMA_EXAMPLE = json.dumps(
    {
        "title": "ユーザーのキーワードに基づいて提案された、魅力的でSEOに適したタイトル",
        "outline": [
            {
                "section": "構成案のセクションタイトル (例: 「1. 導入」)",
                "subsections": ["そのセクションでカバーすべき具体的なサブトピックや要点のリスト"],
            }
        ],
    },
    ensure_ascii=False,
    indent=2,
)

_OUTLINE_PLAIN_EXAMPLE = json.dumps(
    {
        "title": "記事のタイトル",
        "outline": [
            {"section": "セクション1のタイトル", "subsections": ["サブセクション1.1", "サブセクション1.2"]},
            {"section": "セクション2のタイトル", "subsections": ["サブセクション2.1", "サブセクション2.2"]},
        ],
    },
    ensure_ascii=False,
    indent=2,
)

PROMPTS = {
    SCOPE_OUTLINE_SEARCH: {
        "description": "检索上位文章后生成 SEO 文章构成案（JSON，需绑定 Google 搜索工具）",
        "format": "text",
        "content": """あなたはプロのコンテンツストラテジスト兼、SEOエキスパートです。
以下のタイトルまたはキーワードについて、Google検索を実行し、検索結果の上位10記事を分析してください。

タイトル/キーワード: "{topic}"

分析のポイント：
- 各記事がどのようなトピックや質問に答えているか
- 共通して含まれるH2、H3見出しは何か
- どのような検索意図（Search Intent）に基づいているか

その分析結果を踏まえ、既存の記事よりも網羅的で、読者にとって価値の高い独自のブログ記事構成案を生成してください。
構成案は、明確な導入部、複数の主要セクション（それぞれに具体的なサブ項目を含む）、そして力強い結論部からなる論理的な構造を持つ必要があります。
セクションタイトルは互いに重複しないようにしてください。

最終的なアウトプットは、必ず以下のJSON形式に従ってください。説明や前置きは一切不要です。JSONオブジェクトのみを出力してください。

JSON形式の例:
```json
{schema}
```
""",
    },
    SCOPE_OUTLINE: {
        "description": "根据主题直接生成文章构成案（JSON，不检索）",
        "format": "text",
        "content": """以下のトピックに関するブログ記事の構成案を生成してください。
トピック: {topic}
セクションタイトルは互いに重複しないようにしてください。
出力は必ず以下のJSON形式の文字列のみで返してください。他のテキストは含めないでください。
{schema}""",
    },
    SCOPE_ARTICLE_SECTION: {
        "description": "按构成案章节生成正文（不重复章节标题）",
        "format": "text",
        "content": """以下のブログ記事のセクション本文を執筆してください。

記事タイトル: {article_title}
執筆するセクション: {section_title}
このセクションに含めるべきサブセクションやキーワード: {subsections}

上記の指示に基づいて、セクションの本文を日本語で生成してください。
セクションタイトル（「{section_title}」）は本文中に繰り返さないでください。
余計な前置きや後書きは不要です。本文のみを出力してください。""",
    },
}


def build_outline_prompt(topic: str, *, web_search: bool = False) -> str:
    """构成案提示词。

    web_search=True 时要求模型先检索上位文章（调用方须绑定搜索工具）。
    示例 JSON 作为 format 参数注入，模板本身不含字面花括号；
    主题中出现的 `{schema}` 等文本按原样保留。
    """
    if web_search:
        template, example = PROMPTS[SCOPE_OUTLINE_SEARCH]["content"], _OUTLINE_SCHEMA_EXAMPLE
    else:
        template, example = PROMPTS[SCOPE_OUTLINE]["content"], _OUTLINE_PLAIN_EXAMPLE
    return template.format(topic=topic, schema=example)


def build_section_prompt(article_title: str, section_title: str, subsections: list[str]) -> str:
    template = PROMPTS[SCOPE_ARTICLE_SECTION]["content"]
    return template.format(
        article_title=article_title,
        section_title=section_title,
        subsections=", ".join(subsections),
    )
