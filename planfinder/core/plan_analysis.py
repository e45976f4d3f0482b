"""
Decoding of AI-assisted PDF analysis replies.

The model is asked to answer with a JSON object describing the plan. Replies
are decoded through a pydantic schema in which every field has a fallback, so
a partially usable answer still yields a complete PlanAnalysis.
"""

import json
import re
from typing import Dict, List, Any
from pydantic import BaseModel, Field, field_validator
from loguru import logger

from .filename_codec import (
    UNKNOWN, LAYOUTS, FLOORS, DIRECTIONS, SQM_PER_TSUBO, generate_filename,
)


FEATURE_CANDIDATES = [
    "吹き抜け", "ロフト", "スキップフロア", "中庭（パティオ）", "回遊動線", "家事動線",
    "アイランドキッチン／アイランド動線", "玄関土間", "シューズクローク", "パントリー",
    "ランドリールーム（脱衣分離含む）", "ファミリースペース／スタディコーナー", "リビング階段",
    "セカンドリビング", "ウォークインクローゼット", "対面キッチン", "2階リビング", "和室",
    "サンルーム", "駐車1台", "駐車2台", "駐車3台", "駐車4台",
]

ANALYSIS_PROMPT = f"""この住宅プランのPDFから以下の情報を抽出してください。

**重要な抽出ルール:**
1. 建物面積: 「1階床面積」「2階床面積」「延床面積」などから合計を坪数で抽出（㎡の場合は1坪 = {SQM_PER_TSUBO}㎡で坪に変換、小数点第2位まで）
2. 敷地面積: 配置図から敷地面積を坪数で抽出
3. 間取り: 必ず「数字+LDK」の形式で返す（{", ".join(LAYOUTS)}）
4. 階数: {", ".join(FLOORS)} のいずれか
5. 進入方向: 配置図の方位記号と道路の位置関係から判定（{", ".join(DIRECTIONS)}）
6. 特徴: 候補リストから該当するものを選択

**特徴の候補リスト:**
{", ".join(FEATURE_CANDIDATES)}

必ず以下のJSON形式で返答してください（他の文章は含めないでください）：

{{
  "layout": "間取り または null",
  "floors": "階数 または null",
  "totalArea": 建物坪数（数値）または null,
  "siteArea": 敷地面積の坪数（数値）または null,
  "direction": "進入方向 または null",
  "features": ["特徴の配列"],
  "confidence": {{
    "layout": 0-100, "floors": 0-100, "totalArea": 0-100, "siteArea": 0-100,
    "direction": 0-100, "features": 0-100, "overall": 0-100
  }}
}}"""

CONFIDENCE_FIELDS = ("layout", "floors", "totalArea", "siteArea", "direction", "features", "overall")

_FENCED_JSON = re.compile(r'```json\s*([\s\S]*?)\s*```')
_OBJECT = re.compile(r'\{[\s\S]*\}')


class AnalysisDecodeError(ValueError):
    """Raised when a reply contains no decodable JSON object."""


def _closed_set(value: Any, allowed) -> str:
    if isinstance(value, str) and value.strip() in allowed:
        return value.strip()
    return UNKNOWN


def _area(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number or number < 0:  # NaN or negative
        return 0.0
    return number


def _confidence(value: Any) -> int:
    try:
        score = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, score))


class PlanAnalysis(BaseModel):
    """Plan fields extracted from a PDF by the analysis model."""
    layout: str = Field(UNKNOWN, description="Layout token or '-'")
    floors: str = Field(UNKNOWN, description="Floors token or '-'")
    total_area: float = Field(0.0, alias="totalArea", description="Building area in tsubo, 0 if unknown")
    site_area: float = Field(0.0, alias="siteArea", description="Site area in tsubo, 0 if unknown")
    direction: str = Field(UNKNOWN, description="Approach direction or '-'")
    features: List[str] = Field(default_factory=list, description="Feature tags")
    confidence: Dict[str, int] = Field(default_factory=dict, description="Per-field confidence 0-100")

    model_config = {"populate_by_name": True}

    @field_validator("layout", mode="before")
    @classmethod
    def _layout(cls, value):
        return _closed_set(value, LAYOUTS)

    @field_validator("floors", mode="before")
    @classmethod
    def _floors(cls, value):
        return _closed_set(value, FLOORS)

    @field_validator("direction", mode="before")
    @classmethod
    def _direction(cls, value):
        return _closed_set(value, DIRECTIONS)

    @field_validator("total_area", "site_area", mode="before")
    @classmethod
    def _areas(cls, value):
        return _area(value)

    @field_validator("features", mode="before")
    @classmethod
    def _features(cls, value):
        if not isinstance(value, list):
            return []
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence_scores(cls, value):
        source = value if isinstance(value, dict) else {}
        return {name: _confidence(source.get(name)) for name in CONFIDENCE_FIELDS}


def extract_json_text(reply: str) -> str:
    """Pull the JSON payload out of a model reply."""
    fenced = _FENCED_JSON.search(reply)
    if fenced:
        return fenced.group(1).strip()

    obj = _OBJECT.search(reply)
    if obj:
        return obj.group(0)

    return reply.strip()


def decode_analysis(reply: str) -> PlanAnalysis:
    """
    Decode a model reply into a PlanAnalysis.

    Raises:
        AnalysisDecodeError: if the reply has no JSON object
    """
    text = extract_json_text(reply)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise AnalysisDecodeError(f"Analysis reply is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise AnalysisDecodeError("Analysis reply is not a JSON object")

    payload.setdefault("confidence", {})
    analysis = PlanAnalysis.model_validate(payload)
    logger.info(
        f"Decoded plan analysis: layout={analysis.layout} floors={analysis.floors} "
        f"overall confidence={analysis.confidence.get('overall', 0)}"
    )
    return analysis


def to_filename(analysis: PlanAnalysis) -> str:
    """Suggest a catalog filename for an analysed plan."""
    return generate_filename(
        total_area=analysis.total_area,
        layout=analysis.layout,
        floors=analysis.floors,
        direction=analysis.direction,
        site_area=analysis.site_area,
        features=analysis.features,
    )
