"""Configuration constants for Ski Resort Flow.

All tunable parameters are centralized here for easy tuning. Runtime overrides
go through FlowConfig (model/flow_config.py), whose defaults are read from
these classes.

Classes:
    SkillConfig: Preference table, allowed and desperate-only difficulty sets
    TrafficConfig: Capacity derivation and herding window
    DecisionConfig: Scoring weights, softmax temperature, wildcard chance, floors
    LookaheadConfig: Downstream search depth and per-hop discount table
    SearchConfig: Spatial search radii for decisions and connections
    MotionConfig: Speeds, slope speed band, lateral drift and anti-teleport
    LodgeConfig: Lodge defaults (capacity, rest duration, arrival radius)
    ControllerConfig: Replanning toggles and fallback ladder probabilities
"""


class SkillConfig:
    """Skill-to-difficulty preference table.

    Rows are skill levels (beginner..expert), columns are trail difficulties
    (green, blue, black, double_black). Values are the innate preference of a
    skier for that difficulty, in [0, 1].
    """

    SKILL_LEVELS = ["beginner", "intermediate", "advanced", "expert"]
    DIFFICULTIES = ["green", "blue", "black", "double_black"]

    PREFERENCES = {
        "beginner": {"green": 0.75, "blue": 0.25, "black": 0.0, "double_black": 0.0},
        "intermediate": {"green": 0.20, "blue": 0.60, "black": 0.20, "double_black": 0.0},
        "advanced": {"green": 0.05, "blue": 0.25, "black": 0.55, "double_black": 0.15},
        "expert": {"green": 0.02, "blue": 0.10, "black": 0.30, "double_black": 0.58},
    }
    assert set(PREFERENCES.keys()) == set(SKILL_LEVELS)

    # Hard block: never a real option for this skill level
    ALLOWED = {
        "beginner": {"green", "blue"},
        "intermediate": {"green", "blue", "black"},
        "advanced": {"green", "blue", "black", "double_black"},
        "expert": {"green", "blue", "black", "double_black"},
    }
    assert set(ALLOWED.keys()) == set(SKILL_LEVELS)

    # Allowed but strongly discouraged (only taken when nothing else is reachable).
    # Empty by default: every combination the default table discourages is already blocked.
    DESPERATE_ONLY = {
        "beginner": set(),
        "intermediate": set(),
        "advanced": set(),
        "expert": set(),
    }


# Validate table completeness (module-level assertion)
assert all(set(row.keys()) == set(SkillConfig.DIFFICULTIES) for row in SkillConfig.PREFERENCES.values())
assert all(
    SkillConfig.DESPERATE_ONLY[skill] <= SkillConfig.ALLOWED[skill] for skill in SkillConfig.SKILL_LEVELS
), "Desperate-only difficulties must be allowed"


class TrafficConfig:
    """Traffic bookkeeping parameters."""

    # Ring buffer size of the most recent intent events, one ring per edge kind (herding window)
    RECENT_INTENT_WINDOW = 10

    # Trail capacity = max(length / METERS_PER_SLOT, MIN_TRAIL_CAPACITY)
    TRAIL_METERS_PER_SLOT = 50.0
    MIN_TRAIL_CAPACITY = 2.0

    # Lift capacity = max(raw_capacity / LIFT_CAPACITY_DIVISOR, MIN_LIFT_CAPACITY)
    LIFT_CAPACITY_DIVISOR = 200.0
    MIN_LIFT_CAPACITY = 1.0


class DecisionConfig:
    """Scoring weights and softmax selection parameters."""

    # Softmax temperature: low = deterministic, high = near-uniform
    TEMPERATURE = 1.5
    MIN_TEMPERATURE = 0.01

    # Factor weights
    WEIGHT_DIFFICULTY = 1.0
    WEIGHT_DOWNSTREAM = 1.0
    WEIGHT_DEFICIT = 2.5
    WEIGHT_GOAL = 0.5
    WEIGHT_NOVELTY = 0.5
    WEIGHT_CROWDING = 1.0
    WEIGHT_TRAVERSAL = 0.8
    WEIGHT_HERDING = 1.5

    # Chance to ignore scores and pick uniformly ("wildcard" skier)
    CHAOS_PROBABILITY = 0.02

    # Score floor for any non-blocked candidate, and the fixed desperate-only score
    SCORE_FLOOR = 0.01
    DESPERATE_SCORE = 0.01

    # Extra logit penalty keeping hard-blocked candidates exponentially unlikely
    HARD_BLOCK_LOGIT_PENALTY = 50.0

    # Personality: 8 weight offsets drawn uniformly in [-MAGNITUDE, MAGNITUDE]
    PERSONALITY_SLOTS = 8
    PERSONALITY_MAGNITUDE = 0.3
    PERSONALITY_SEED_MULTIPLIER = 31337
    PERSONALITY_SEED_OFFSET = 7919

    # Traversal willingness: clamp01(BASE + GAP_BONUS * gap) at or below skill
    TRAVERSAL_BASE = 0.3
    TRAVERSAL_GAP_BONUS = 0.2
    TRAVERSAL_ONE_ABOVE = 0.1


assert DecisionConfig.MIN_TEMPERATURE > 0
assert 0.0 <= DecisionConfig.CHAOS_PROBABILITY <= 1.0
assert DecisionConfig.SCORE_FLOOR > 0


class LookaheadConfig:
    """Downstream value search parameters."""

    MAX_DEPTH = 5

    # Per-hop discount: hop 1, hop 2, hop 3, hop 4+
    DEPTH_DISCOUNTS = (1.0, 0.7, 0.45, 0.3)


assert all(
    a > b for a, b in zip(LookaheadConfig.DEPTH_DISCOUNTS, LookaheadConfig.DEPTH_DISCOUNTS[1:])
), "Depth discounts must be strictly decreasing"


class SearchConfig:
    """Spatial search radii (length units, same as path coordinates)."""

    TRAIL_START_SEARCH_RADIUS = 50.0  # Trails starting near a lift top or trail end
    LIFT_SEARCH_RADIUS = 50.0  # Lift bottoms near a trail end
    GOAL_LIFT_WALK_RADIUS = 60.0  # Max walk to the goal's next lift
    GOAL_TRAIL_RADIUS = 25.0  # Max gap to the goal's next trail start
    JUNCTION_DETECTION_RADIUS = 15.0  # Mid-run exit detection
    NETWORK_SNAP_RADIUS = 25.0  # Structural connections between edges
    BASE_RADIUS = 50.0  # "At base" check for end-of-run
    LODGE_SEARCH_RADIUS = 30.0  # Lodges considered after a run


class MotionConfig:
    """Agent motion parameters."""

    WALK_SPEED = 4.0
    LIFT_SPEED = 2.0
    BASE_SKI_SPEED = 5.0

    # Anti-teleport: per-tick displacement <= max(speeds) * SAFETY_FACTOR * dt
    ANTI_TELEPORT_SAFETY_FACTOR = 2.0

    # Slope-dependent ski speed: lerp(MIN, MAX, clamp01(slope_deg / MAX_SLOPE_DEG))
    SLOPE_SPEED_MIN_MULTIPLIER = 0.6
    SLOPE_SPEED_MAX_MULTIPLIER = 1.8
    SLOPE_SPEED_MAX_DEG = 45.0
    DEFAULT_SLOPE_DEG = 10.0  # Used when a trail has no usable segment

    WALK_ARRIVAL_RADIUS = 0.5

    # Lateral drift across the trail width
    LATERAL_NOISE_SCALE = 0.05  # Noise input per metre travelled
    LATERAL_NOISE_SEED_SCALE = 137.31  # Noise row per agent id
    LATERAL_DRIFT_SPEED = 0.6  # Normalized offset change per second
    MAX_LATERAL_RATIO = 0.85  # Fraction of half-width never exceeded
    DEFAULT_TRAIL_WIDTH = 8.0

    # Mid-run exits are only evaluated inside this progress window
    EXIT_WINDOW_START = 0.1
    EXIT_WINDOW_END = 0.9


assert MotionConfig.SLOPE_SPEED_MIN_MULTIPLIER < MotionConfig.SLOPE_SPEED_MAX_MULTIPLIER
assert 0.0 < MotionConfig.MAX_LATERAL_RATIO < 1.0
assert 0.0 <= MotionConfig.EXIT_WINDOW_START < MotionConfig.EXIT_WINDOW_END <= 1.0


class LodgeConfig:
    """Lodge defaults."""

    CAPACITY = 20
    REST_DURATION_S = 30.0
    ARRIVAL_RADIUS = 3.0


class ControllerConfig:
    """Agent controller behaviour."""

    LODGE_VISIT_CHANCE = 0.15
    REPLAN_AFTER_EVERY_RUN = True
    REPLAN_AT_LIFT_TOP = True


assert 0.0 <= ControllerConfig.LODGE_VISIT_CHANCE <= 1.0
