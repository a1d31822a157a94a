"""Closed vocabularies and timing constants shared by planner, QC and assembly."""
from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar

TOTAL_DURATION_SEC = 120
ALLOWED_DURATIONS = (6, 8)
MIN_BEATS = 12
MAX_BEATS = 18
MIN_BREATHING_BEATS = 4
LONG_BEAT_SEC = 8


class BeatType(str, Enum):
    NARRATED = "narrated"
    BREATHING = "breathing"
    TRANSITION = "transition"


class VisualCategory(str, Enum):
    COSMOS = "cosmos"
    EARTH = "earth"
    HUMAN = "human"
    NATURE = "nature"
    ABSTRACT = "abstract"
    CONFLICT = "conflict"
    OCEAN = "ocean"
    DOMESTIC = "domestic"
    INDUSTRIAL = "industrial"
    DESERT = "desert"


class CameraMotion(str, Enum):
    SLOW_DRIFT = "slow_drift"
    SLOW_PUSH = "slow_push"
    LOCKED_OFF = "locked_off"
    HANDHELD = "handheld"


class Framing(str, Enum):
    WIDE = "wide"
    MEDIUM = "medium"
    CLOSE = "close"


class Lens(str, Enum):
    WIDE = "wide"
    NORMAL = "normal"
    TELE = "tele"


class LightTime(str, Enum):
    NIGHT = "night"
    DAWN = "dawn"
    DAY = "day"
    DUSK = "dusk"


class Contrast(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Transition(str, Enum):
    CUT = "cut"
    DISSOLVE = "dissolve"
    MATCH_CUT = "match_cut"


class ActType(str, Enum):
    VAST = "vast"
    LIVING_DOT = "living_dot"
    MIRACLE_OF_YOU = "miracle_of_you"
    RETURN = "return"


class ScaleType(str, Enum):
    COSMIC = "cosmic"
    GLOBAL = "global"
    HUMAN = "human"
    PERSONAL = "personal"


class NarrationStyle(str, Enum):
    SPARSE = "sparse"
    MODERATE = "moderate"
    MINIMAL = "minimal"


class Motif(str, Enum):
    EARTH_FROM_SPACE = "earth_from_space"
    STARFIELD = "starfield"
    CITY_LIGHTS = "city_lights"
    HUMAN_LABOR = "human_labor"
    STRUGGLE_SURVIVAL = "struggle_survival"
    QUIET_RETURN = "quiet_return"
    SHARED_CONTINUANCE = "shared_continuance"
    OCEAN_CURRENT = "ocean_current"
    MOUNTAIN_RIDGE = "mountain_ridge"
    URBAN_NIGHT = "urban_night"
    DESERT_STILLNESS = "desert_stillness"
    FOREST_CANOPY = "forest_canopy"
    DOMESTIC_DETAIL = "domestic_detail"
    CROWD_MOTION = "crowd_motion"
    INDUSTRIAL_HUM = "industrial_hum"


class ShotType(str, Enum):
    WIDE = "wide"
    MACRO = "macro"
    AERIAL = "aerial"
    STATIC = "static"
    SLOW_DRIFT = "slow_drift"


class SceneTimeOfDay(str, Enum):
    DAWN = "dawn"
    MORNING = "morning"
    MIDDAY = "midday"
    AFTERNOON = "afternoon"
    DUSK = "dusk"
    EVENING = "evening"
    NIGHT = "night"


class SceneSetting(str, Enum):
    URBAN = "urban"
    SUBURBAN = "suburban"
    RURAL = "rural"
    INTERIOR = "interior"
    TRANSIT = "transit"
    WORKPLACE = "workplace"
    PUBLIC_SPACE = "public_space"
    SPACE = "space"


class SceneSource(str, Enum):
    GEN = "GEN"
    STOCK = "STOCK"
    HOLD = "HOLD"


class PipelineStatus(str, Enum):
    PENDING = "pending"
    UNDERSTANDING = "understanding"
    BLUEPRINT = "blueprint"
    GENERATING = "generating"
    ASSEMBLING = "assembling"
    READY = "ready"
    FAILED = "failed"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


ACT_ORDER = (ActType.VAST, ActType.LIVING_DOT, ActType.MIRACLE_OF_YOU, ActType.RETURN)

# Stage numbers recorded with terminal failures.
STAGE_LAYERS: Dict[str, int] = {
    PipelineStatus.UNDERSTANDING.value: 1,
    PipelineStatus.BLUEPRINT.value: 3,
    PipelineStatus.GENERATING.value: 6,
    PipelineStatus.ASSEMBLING.value: 7,
}

LIGHT_TO_SCENE_TIME: Dict[str, str] = {
    LightTime.NIGHT.value: SceneTimeOfDay.NIGHT.value,
    LightTime.DAWN.value: SceneTimeOfDay.DAWN.value,
    LightTime.DAY.value: SceneTimeOfDay.MIDDAY.value,
    LightTime.DUSK.value: SceneTimeOfDay.DUSK.value,
}

CATEGORY_TO_SETTING: Dict[str, str] = {
    VisualCategory.COSMOS.value: SceneSetting.SPACE.value,
    VisualCategory.EARTH.value: SceneSetting.RURAL.value,
    VisualCategory.HUMAN.value: SceneSetting.URBAN.value,
    VisualCategory.NATURE.value: SceneSetting.RURAL.value,
    VisualCategory.ABSTRACT.value: SceneSetting.INTERIOR.value,
    VisualCategory.CONFLICT.value: SceneSetting.PUBLIC_SPACE.value,
    VisualCategory.OCEAN.value: SceneSetting.RURAL.value,
    VisualCategory.DOMESTIC.value: SceneSetting.INTERIOR.value,
    VisualCategory.INDUSTRIAL.value: SceneSetting.WORKPLACE.value,
    VisualCategory.DESERT.value: SceneSetting.RURAL.value,
}

E = TypeVar("E", bound=Enum)


def values(enum_cls: Type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


def is_member(enum_cls: Type[Enum], value: Any) -> bool:
    return isinstance(value, str) and value in {member.value for member in enum_cls}


def coerce(enum_cls: Type[E], value: Any, default: E) -> str:
    """Return ``value`` when it names a member of ``enum_cls``, else ``default``'s value."""
    if is_member(enum_cls, value):
        return value
    return default.value


def act_type_for_index(act_index: int) -> str:
    if 0 <= act_index < len(ACT_ORDER):
        return ACT_ORDER[act_index].value
    return ActType.RETURN.value


def scene_time_for_light(time_of_day: Optional[str]) -> str:
    return LIGHT_TO_SCENE_TIME.get(time_of_day or "", SceneTimeOfDay.MORNING.value)


def setting_for_category(category: Optional[str]) -> str:
    return CATEGORY_TO_SETTING.get(category or "", SceneSetting.RURAL.value)
