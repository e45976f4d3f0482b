"""
Filename codec for housing plan PDFs.
Parses the catalog's filename convention into structured plan metadata and
generates new filenames from metadata.

Filename format:
    {building area}_{layout}_{floors}_{direction}_{site area}_{feature1-feature2-...}.pdf
Example:
    32.5坪_3LDK_2階建て_南_50坪_吹き抜け-WIC-ロフト.pdf
"""

import re
from typing import Dict, List, Any, Optional, Sequence
from dataclasses import dataclass, field
from enum import Enum
from loguru import logger


UNKNOWN = "-"
TSUBO_SUFFIX = "坪"
DEFAULT_TITLE = "住宅プラン"
ROAD_SUFFIX = "道路"
SQM_PER_TSUBO = 3.30579

LAYOUTS = ("2LDK", "3LDK", "4LDK", "5LDK", "6LDK")
FLOORS = ("平屋", "2階建て", "3階建て")
DIRECTIONS = ("東", "西", "南", "北", "北東", "北西", "南東", "南西")

MIN_SEGMENTS = 5

_PDF_SUFFIX = re.compile(r'\.pdf$', re.IGNORECASE)
_NUMBER = re.compile(r'[0-9]+(?:\.[0-9]+)?')


class ParseErrorKind(Enum):
    """Reasons a filename can be rejected."""
    INVALID_FORMAT = "InvalidFormat"
    INVALID_BUILDING_AREA = "InvalidBuildingArea"
    INVALID_FLOORS = "InvalidFloors"
    INVALID_DIRECTION = "InvalidDirection"
    INVALID_SITE_AREA = "InvalidSiteArea"
    PARSE_ERROR = "ParseError"


ERROR_MESSAGES = {
    ParseErrorKind.INVALID_FORMAT: (
        "ファイル名の形式が正しくありません。"
        "形式: {建物坪数}_{間取り}_{階数}_{進入方向}_{敷地面積}_{特徴}.pdf"
    ),
    ParseErrorKind.INVALID_BUILDING_AREA: "建物坪数の形式が正しくありません。例: 32.5坪 または -",
    ParseErrorKind.INVALID_FLOORS: "階数は平屋・2階建て・3階建て または - を指定してください",
    ParseErrorKind.INVALID_DIRECTION: "進入方向は東・西・南・北・北東・北西・南東・南西 または - を指定してください",
    ParseErrorKind.INVALID_SITE_AREA: "敷地面積の形式が正しくありません。例: 50坪 または -",
    ParseErrorKind.PARSE_ERROR: "ファイル名の解析中にエラーが発生しました",
}


@dataclass
class PlanMetadata:
    """Plan information extracted from a filename."""
    title: str
    layout: str
    floors: str
    total_area: float
    direction: str
    site_area: float
    features: List[str] = field(default_factory=list)
    original_filename: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "layout": self.layout,
            "floors": self.floors,
            "totalArea": self.total_area,
            "direction": self.direction,
            "siteArea": self.site_area,
            "features": list(self.features),
            "originalFilename": self.original_filename,
        }


@dataclass
class ParseError:
    """Structured parse failure."""
    kind: ParseErrorKind
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message}


@dataclass
class ParseResult:
    """Outcome of parsing one filename. Exactly one of data/error is set."""
    success: bool
    data: Optional[PlanMetadata] = None
    error: Optional[ParseError] = None

    @classmethod
    def ok(cls, data: PlanMetadata) -> "ParseResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, kind: ParseErrorKind, detail: Optional[str] = None) -> "ParseResult":
        message = ERROR_MESSAGES[kind]
        if detail:
            message = f"{message}: {detail}"
        return cls(success=False, error=ParseError(kind=kind, message=message))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.data is not None:
            result["data"] = self.data.to_dict()
        if self.error is not None:
            result["error"] = self.error.to_dict()
        return result


@dataclass
class AreaToken:
    """Area segment after the sentinel / number decision."""
    kind: str  # "unknown", "value" or "invalid"
    value: float = 0.0

    @property
    def is_valid(self) -> bool:
        return self.kind != "invalid"


def parse_area(segment: str) -> AreaToken:
    """
    Decode an area segment such as "32.5坪", "50", "-" or "-坪".

    The sentinel is checked first; only non-sentinel text goes through
    number extraction, which takes the first decimal number found.
    """
    cleaned = segment.strip()
    if cleaned.endswith(TSUBO_SUFFIX):
        cleaned = cleaned[:-len(TSUBO_SUFFIX)]

    if cleaned == UNKNOWN:
        return AreaToken(kind="unknown", value=0.0)

    match = _NUMBER.search(segment)
    if not match:
        return AreaToken(kind="invalid")

    return AreaToken(kind="value", value=float(match.group(0)))


def format_number(value: float) -> str:
    """Render a number the way the catalog displays it: 28 -> "28", 32.5 -> "32.5"."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def build_title(total_area: float, layout: str, floors: str, direction: str) -> str:
    """
    Build the display title from plan fields, skipping unknown values.

    Returns DEFAULT_TITLE when every field is unknown.
    """
    parts = []
    if total_area > 0:
        parts.append(f"{format_number(total_area)}{TSUBO_SUFFIX}")
    if layout.strip() != UNKNOWN:
        parts.append(layout.strip())
    if floors.strip() != UNKNOWN:
        parts.append(floors.strip())
    if direction.strip() != UNKNOWN:
        parts.append(f"{direction.strip()}{ROAD_SUFFIX}")

    return " ".join(parts) if parts else DEFAULT_TITLE


def _split_features(feature_parts: Sequence[str]) -> List[str]:
    """Rejoin trailing segments and split them into trimmed, non-empty features."""
    features_str = "_".join(feature_parts)
    if not features_str:
        return []
    return [piece.strip() for piece in features_str.split("-") if piece.strip()]


def parse_filename(filename: str) -> ParseResult:
    """
    Parse a plan filename into metadata.

    Args:
        filename: Filename such as "32.5坪_3LDK_2階建て_南_50坪_吹き抜け-WIC-ロフト.pdf"

    Returns:
        ParseResult; failures are reported in the result and never raised
    """
    try:
        name = _PDF_SUFFIX.sub("", filename)
        parts = name.split("_")

        if len(parts) < MIN_SEGMENTS:
            return ParseResult.fail(ParseErrorKind.INVALID_FORMAT)

        building_area_str, layout, floors, direction, site_area_str = parts[:MIN_SEGMENTS]
        feature_parts = parts[MIN_SEGMENTS:]

        building_area = parse_area(building_area_str)
        if not building_area.is_valid:
            return ParseResult.fail(ParseErrorKind.INVALID_BUILDING_AREA)

        floors = floors.strip()
        if floors not in FLOORS and floors != UNKNOWN:
            return ParseResult.fail(ParseErrorKind.INVALID_FLOORS)

        direction = direction.strip()
        if direction not in DIRECTIONS and direction != UNKNOWN:
            return ParseResult.fail(ParseErrorKind.INVALID_DIRECTION)

        site_area = parse_area(site_area_str)
        if not site_area.is_valid:
            return ParseResult.fail(ParseErrorKind.INVALID_SITE_AREA)

        layout = layout.strip()
        metadata = PlanMetadata(
            title=build_title(building_area.value, layout, floors, direction),
            layout=layout,
            floors=floors,
            total_area=building_area.value,
            direction=direction,
            site_area=site_area.value,
            features=_split_features(feature_parts),
            original_filename=filename,
        )
        return ParseResult.ok(metadata)

    except Exception as e:
        logger.debug(f"Unexpected failure parsing filename {filename!r}: {e}")
        return ParseResult.fail(ParseErrorKind.PARSE_ERROR, str(e))


def parse_multiple_filenames(filenames: Sequence[str]) -> List[ParseResult]:
    """Parse each filename independently, preserving input order."""
    return [parse_filename(filename) for filename in filenames]


def validate_filename(filename: str) -> bool:
    """Check whether a filename follows the catalog convention."""
    return parse_filename(filename).success


def generate_filename(total_area: float, layout: str, floors: str, direction: str,
                      site_area: float, features: Sequence[str] = ()) -> str:
    """
    Generate a catalog filename from plan fields.

    Areas are always written as numbers with the tsubo suffix, so a plan whose
    areas were unknown comes back as "0坪" rather than "-".
    """
    filename = (
        f"{format_number(total_area)}{TSUBO_SUFFIX}_{layout}_{floors}_"
        f"{direction}_{format_number(site_area)}{TSUBO_SUFFIX}"
    )

    if features:
        filename += "_" + "-".join(features)

    return f"{filename}.pdf"


def validate_plan_fields(layout: str, floors: str, direction: str) -> List[str]:
    """
    Check plan fields against the closed value sets used at upload time.

    Unlike parse_filename, this also rejects layouts outside LAYOUTS.
    """
    errors = []
    if layout not in LAYOUTS and layout != UNKNOWN:
        errors.append(f"間取りは{'・'.join(LAYOUTS)} または - を指定してください")
    if floors not in FLOORS and floors != UNKNOWN:
        errors.append(ERROR_MESSAGES[ParseErrorKind.INVALID_FLOORS])
    if direction not in DIRECTIONS and direction != UNKNOWN:
        errors.append(ERROR_MESSAGES[ParseErrorKind.INVALID_DIRECTION])
    return errors
