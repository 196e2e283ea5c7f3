"""Rule tables for observation derivation.

Every text table is a sequence of (key, phrases) pairs; phrases are written the
way people say them and folded through `normalize_text` at import. Order is
significant wherever a per-family cap applies.
"""

from __future__ import annotations

import re
from typing import Dict, Sequence, Tuple

from .text_norm import compile_phrases

PhraseTable = Tuple[Tuple[str, Tuple[str, ...]], ...]


def _table(rows: Sequence[Tuple[str, Sequence[str]]]) -> PhraseTable:
    return tuple((key, compile_phrases(phrases)) for key, phrases in rows)


# ---------------------------------------------------------------------------
# Context summary -> observations
# ---------------------------------------------------------------------------

# (any of these desired-output tags, key, strength)
DESIRED_OUTPUT_STYLE: Tuple[Tuple[Tuple[str, ...], str, float], ...] = (
    (("steps", "checklist"), "bullets", 0.7),
    (("summary",), "concise", 0.5),
    (("script",), "scripted_reply", 0.5),
    (("steps",), "prefers_numbered_steps", 0.6),
    (("checklist",), "prefers_checklist", 0.6),
    (("decision_tree",), "prefers_decision_tree", 0.6),
)

CONSTRAINT_SENSITIVITY: Dict[str, str] = {
    "time": "time_pressure",
    "energy": "low_energy",
    "money": "money_limit",
    "social": "social_overload",
    "dependencies": "dependency_blocked",
    "sensory": "sensory_noise",
    "legal": "legal_risk",
}
CONSTRAINT_SENSITIVITY_STRENGTH = 0.25

# primitive -> narrative_pattern key
NARRATIVE_KEYS: Tuple[Tuple[str, str], ...] = (
    ("narrative_looping", "replay_loop"),
    ("identity_tightening", "identity_frame_present"),
    ("attachment_to_outcome", "outcome_fixation"),
    ("control_seeking", "control_frame"),
    ("intolerance_of_uncertainty", "uncertainty_pressure"),
    ("self_judgement", "self_attack_language"),
    ("reassurance_seeking", "reassurance_checking"),
    ("aversion_resistance", "avoidance_language"),
)

# primitive -> contraction_pattern key
CONTRACTION_KEYS: Tuple[Tuple[str, str], ...] = (
    ("identity_tightening", "contraction:identity_fixation"),
    ("attachment_to_outcome", "contraction:outcome_fixation"),
    ("control_seeking", "contraction:control_pressure"),
    ("intolerance_of_uncertainty", "contraction:uncertainty_pressure"),
    ("narrative_looping", "contraction:mental_looping"),
    ("self_judgement", "contraction:self_attack"),
    ("reassurance_seeking", "contraction:checking_for_reassurance"),
    ("aversion_resistance", "contraction:avoidance_pressure"),
)

DOMINANT_PRIMITIVE_STRENGTH = 0.6
BACKGROUND_PRIMITIVE_STRENGTH = 0.4


# ---------------------------------------------------------------------------
# Redacted text -> observations
# ---------------------------------------------------------------------------

RELEASE_RULES: Tuple[Tuple[str, float, Tuple[str, ...]], ...] = (
    ("release:ease_present", 0.4, compile_phrases([
        "ease", "easier", "with ease", "can breathe", "could breathe",
        "breathing easier", "relief", "relieved",
    ])),
    ("release:settling", 0.4, compile_phrases([
        "settled", "settling", "less tight", "less tense", "unclench",
        "soften", "softening",
    ])),
    ("release:openness", 0.3, compile_phrases([
        "more space", "there is space", "space opened", "spacious",
        "feel space", "sense of space", "let go", "dropped it", "drop it",
    ])),
)

NOISE_PHRASES = ["noise", "noisy", "too loud", "loud noise", "loud noises", "background noise"]
BRIGHT_LIGHT_PHRASES = ["bright light", "bright lights", "glare", "fluorescent light", "fluorescent lights"]
CROWD_PHRASES = ["crowds", "crowded", "crowded places", "busy places", "too many people"]
HIERARCHY_PHRASES = ["hierarchy games", "power games", "status games", "power dynamics"]
OBSERVED_PHRASES = ["being watched", "being observed", "people watching me"]

SITUATIONAL_TRIGGERS: PhraseTable = _table([
    # Sensory
    ("trigger:noise", NOISE_PHRASES),
    ("trigger:bright_light", BRIGHT_LIGHT_PHRASES),
    ("trigger:crowds", CROWD_PHRASES),
    # Social
    ("trigger:group_dynamics", ["group dynamics"]),
    ("trigger:hierarchy_games", HIERARCHY_PHRASES),
    ("trigger:being_observed", OBSERVED_PHRASES),
    # Cognitive load
    ("trigger:too_many_variables", ["too many variables", "too many moving parts", "too many factors"]),
    ("trigger:unclear_requirements", ["unclear requirements", "requirements unclear", "not clear what is needed"]),
    ("trigger:interruptions", ["interruptions", "interrupted", "getting interrupted"]),
    ("trigger:context_switching", ["context switching", "switching context", "switching tasks", "task switching"]),
    # Day state
    ("trigger:deadline_pressure", ["deadline pressure", "tight deadline", "deadline looming"]),
    ("trigger:low_sleep", ["low sleep", "no sleep", "little sleep", "sleep deprived", "didn't sleep", "did not sleep"]),
    ("trigger:low_energy", ["low energy", "exhausted", "tired", "burnt out", "burned out"]),
])
SITUATIONAL_STRENGTH = 0.4

QUESTION_LIGHT_PHRASES = [
    "stop asking questions", "just tell me", "don't ask me questions", "do not ask me questions",
    "no questions", "no more questions", "quit asking questions", "stop with the questions",
]

QUESTION_BREADTH: PhraseTable = _table([
    ("question_light", QUESTION_LIGHT_PHRASES),
    ("question_guided", [
        "ask me questions", "help me think this through", "question me", "can you question me",
        "guide me with questions", "ask questions to help me think",
    ]),
    ("narrow_first", [
        "one thing at a time", "just pick one", "too many options", "pick one for me",
        "choose one for me", "don't give me options", "do not give me options", "just choose for me", "pick one",
    ]),
    ("explore_space", [
        "what are my options", "map it out", "what else could work", "alternatives",
        "explore options", "show me options", "option space", "lay out the options",
    ]),
])
QUESTION_BREADTH_STRENGTH = 0.5


# --- Profile --------------------------------------------------------------

LANGUAGE_RULES: PhraseTable = _table([
    ("profile:language:english", [
        "english only", "only english", "i only speak english", "i just speak english",
        "i speak english", "english is my first language",
    ]),
    ("profile:language:non_native_english", [
        "english isn't my first language", "english is not my first language",
        "non-native english", "non native english",
    ]),
])

COUNTRIES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("uk", ("united kingdom", "u.k.", "uk", "the uk", "britain", "great britain", "england", "scotland", "wales", "northern ireland")),
    ("ireland", ("ireland", "republic of ireland", "eire", "éire")),
    ("us", ("united states", "u.s.", "usa", "the us", "the usa", "america", "the states")),
    ("canada", ("canada",)),
    ("australia", ("australia",)),
    ("new_zealand", ("new zealand", "nz", "n.z.")),
    ("france", ("france",)),
    ("germany", ("germany",)),
    ("spain", ("spain",)),
    ("italy", ("italy",)),
    ("netherlands", ("netherlands", "the netherlands", "holland")),
    ("sweden", ("sweden",)),
    ("norway", ("norway",)),
    ("denmark", ("denmark",)),
    ("switzerland", ("switzerland",)),
    ("austria", ("austria",)),
    ("belgium", ("belgium",)),
    ("portugal", ("portugal",)),
    ("greece", ("greece",)),
    ("poland", ("poland",)),
    ("czechia", ("czech republic", "czechia")),
    ("hungary", ("hungary",)),
    ("romania", ("romania",)),
    ("bulgaria", ("bulgaria",)),
    ("turkey", ("turkey",)),
    ("ukraine", ("ukraine",)),
    ("russia", ("russia",)),
    ("israel", ("israel",)),
    ("uae", ("uae", "u.a.e.", "united arab emirates", "dubai", "abu dhabi")),
    ("saudi", ("saudi", "saudi arabia")),
    ("egypt", ("egypt",)),
    ("south_africa", ("south africa",)),
    ("nigeria", ("nigeria",)),
    ("kenya", ("kenya",)),
    ("ghana", ("ghana",)),
    ("india", ("india",)),
    ("pakistan", ("pakistan",)),
    ("bangladesh", ("bangladesh",)),
    ("sri_lanka", ("sri lanka",)),
    ("nepal", ("nepal",)),
    ("bhutan", ("bhutan",)),
    ("china", ("china",)),
    ("hong_kong", ("hong kong",)),
    ("taiwan", ("taiwan",)),
    ("south_korea", ("south korea", "korea")),
    ("singapore", ("singapore",)),
    ("malaysia", ("malaysia",)),
    ("indonesia", ("indonesia",)),
    ("thailand", ("thailand",)),
    ("vietnam", ("vietnam",)),
    ("philippines", ("philippines", "the philippines")),
    ("japan", ("japan",)),
    ("mongolia", ("mongolia",)),
    ("tibet", ("tibet",)),
)

# A place name only counts behind a first-person anchor ("I live in France", not "France is nice").
FIRST_PERSON_PLACE_ANCHORS: Tuple[str, ...] = (
    "i'm in {}", "i am in {}", "i live in {}", "i'm based in {}", "i am based in {}",
    "based in {}", "i'm from {}", "i am from {}", "i was born in {}", "born in {}",
    "i moved to {}", "i moved back to {}", "i grew up in {}",
)


def _anchored(places: Sequence[str]) -> Tuple[str, ...]:
    return compile_phrases(a.format(p) for p in places for a in FIRST_PERSON_PLACE_ANCHORS)


COUNTRY_ANCHORS: PhraseTable = tuple((key, _anchored(places)) for key, places in COUNTRIES)

REGION_ANCHORS: PhraseTable = (("profile:region:europe", _anchored(["europe"])),)

COUNTRY_STRENGTH = 0.25
REGION_STRENGTH = 0.20
LANGUAGE_STRENGTH = 0.25
AGE_BAND_STRENGTH = 0.25
AGE_DECADE_STRENGTH = 0.20

AGE_MIN = 18
AGE_MAX = 99

_NOT_AN_AGE = (
    r"(?! (?:minutes?|mins?|hours?|hrs?|seconds?|secs?|days?|weeks?|months?|percent|per cent|times"
    r"|pounds|quid|dollars|euros|am|pm|oclock|of|out|miles|km|kg|stone)\b)"
)

# First-person only; matched against normalized text.
AGE_PATTERNS: Tuple["re.Pattern[str]", ...] = (
    re.compile(r"\b(?:im|i m|i am)(?: now| just| turning)? (\d{1,2})\b" + _NOT_AN_AGE),
    re.compile(r"\b(?:im|i m|i am) aged (\d{1,2})\b"),
    re.compile(r"\bmy age is (\d{1,2})\b"),
)

AGE_BANDS: Tuple[Tuple[int, str], ...] = (
    (18, "under_18"),
    (25, "18_24"),
    (35, "25_34"),
    (45, "35_44"),
    (55, "45_54"),
    (65, "55_64"),
    (75, "65_74"),
)


# --- Dharma practice ------------------------------------------------------

DHARMA_VEHICLES: PhraseTable = _table([
    ("theravada", ["theravada", "theravāda"]),
    ("mahayana", ["mahayana", "mahāyāna", "mahayaana", "mahayana buddhism"]),
    ("vajrayana", ["vajrayana", "vajrayāna", "tantra", "tantric", "i practice tantra", "diamond vehicle", "vajra vehicle"]),
    ("hinayana_term", ["hinayana", "hīnayāna"]),
    ("sutrayana", ["sutrayana", "sūtrayāna", "i practice sutra"]),
    ("zen", ["zen", "soto zen", "rinzai", "seon"]),
    ("pure_land", ["pure land", "jodo", "jōdo", "jodo shinshu", "shin buddhism", "nembutsu", "nenbutsu"]),
    ("tibetan", ["tibetan buddhism", "vajrayana", "tantra"]),
    ("secular", ["secular buddhism", "secular dharma"]),
])

DHARMA_SCHOOLS: PhraseTable = _table([
    ("nyingma", ["nyingma"]),
    ("kagyu", ["kagyu", "kagyü", "karma kagyu", "drukpa kagyu"]),
    ("gelug", ["gelug", "geluk", "gelugpa", "gelukpa", "fpmt"]),
    ("sakya", ["sakya", "sakyapa"]),
    ("jonang", ["jonang"]),
    ("bon", ["bön"]),
])

DHARMA_ROLES: PhraseTable = _table([
    ("monastic", ["i'm ordained", "i am ordained", "monastic", "bhikkhu", "bhikkhuni", "bhikshu", "bhikshuni"]),
    ("lay", ["lay practitioner", "lay buddhist", "householder", "i'm lay", "i am lay"]),
    ("ngakpa", ["ngakpa", "ngagpa", "sngags pa", "i'm a ngakpa", "i am a ngakpa"]),
    ("teacher_role_terms", ["lama", "rinpoche", "khenpo", "geshe", "roshi", "ajahn", "sayadaw"]),
])

DHARMA_EXPERIENCE: PhraseTable = _table([
    ("beginner", ["i'm a beginner", "i am a beginner", "new to buddhism", "new to meditation", "just starting to meditate"]),
    ("intermediate", ["some experience meditating", "i've practiced a bit", "i have practiced a bit"]),
    ("advanced", ["advanced practitioner", "very experienced practitioner", "decades of practice", "long-term practitioner", "long time practitioner"]),
    ("long_time", ["practised for decades", "practiced for decades", "meditating for decades", "over ten years of practice"]),
])

# "practising for 12 years" style durations; ten years or more reads as long-time practice.
PRACTICE_DURATION_RE = re.compile(
    r"\b(?:practi[cs]ed|practi[cs]ing|meditated|meditating|sitting)\b(?: \w+){0,4}? for (\d{1,2}) years\b"
)
LONG_TIME_PRACTICE_YEARS = 10

DHARMA_PRACTICES: PhraseTable = _table([
    ("shamatha", ["shamatha", "śamatha", "calm abiding", "calm-abiding"]),
    ("vipashyana", ["vipashyana", "vipaśyanā", "vipassana", "insight meditation", "insight practice"]),
    ("zazen", ["zazen", "shikantaza"]),
    ("koan", ["koan", "kōan"]),
    ("metta", ["metta", "mettā", "loving-kindness", "loving kindness"]),
    ("tonglen", ["tonglen", "gtong len"]),
    ("lojong", ["lojong", "blo sbyong", "mind training"]),
    ("ngondro", ["ngondro", "ngöndro", "preliminaries"]),
    ("prostrations", ["prostrations", "100,000 prostrations", "hundred thousand prostrations"]),
    ("mandala_offering", ["mandala offering", "maṇḍala offering", "mandala offerings"]),
    ("refuge", ["taking refuge"]),
    ("bodhicitta", ["bodhicitta", "byang chub sems"]),
    ("vajrasattva", ["vajrasattva", "benzo satto", "benza satto", "dorje sempa", "samaya repair"]),
    ("guru_yoga", ["guru yoga", "lama'i naljor", "lama naljor"]),
    ("mantra_recitation", ["mantra recitation", "reciting mantra", "mantra practice", "japa"]),
    ("sadhana", ["sadhana", "sādhana", "daily sadhana"]),
    ("accumulation", ["accumulation", "accumulations", "tsok accumulation", "merit accumulation"]),
    ("tsok", ["tsok", "tshogs", "ganachakra", "gaṇacakra", "feast offering"]),
    ("chod", ["chod", "chöd", "gcod"]),
    ("phowa", ["phowa", "pho ba"]),
    ("tummo", ["tummo", "gtum mo", "inner heat"]),
    ("completion_stage", ["completion stage", "dzogrim", "rdzogs rim"]),
    ("generation_stage", ["generation stage", "kyerim", "bskyed rim"]),
    ("mahamudra", ["mahamudra", "mahāmudrā"]),
    ("dzogchen", ["dzogchen", "rdzogs chen", "atiyoga", "rigpa"]),
    ("trekcho", ["trekchö", "trekcho", "cutting through"]),
    ("thogal", ["thögal", "thogal", "direct crossing"]),
    ("thangka", ["thangka", "thangka painting", "thangka practice"]),
])

DHARMA_DEITIES: PhraseTable = _table([
    ("tara", ["tara", "tārā"]),
    ("green_tara", ["green tara", "syamatara", "śyāmatārā"]),
    ("white_tara", ["white tara", "sitatara", "sitatārā"]),
    ("medicine_buddha", ["medicine buddha", "bhaishajyaguru", "bhaiṣajyaguru", "sangye menla", "menla"]),
    ("avalokiteshvara", ["avalokiteshvara", "avalokiteśvara", "chenrezig", "chenrezi", "guanyin", "kannon"]),
    ("manjushri", ["manjushri", "mañjuśrī", "manjushree", "jamyang", "jam dbyangs"]),
    ("vajrapani", ["vajrapani", "vajrapāṇi", "chana dorje", "phyag na rdo rje"]),
    ("padmasambhava", ["padmasambhava", "guru rinpoche", "guru rimpoche", "orgyen", "oddiyana", "oḍḍiyāna"]),
    ("amitabha", ["amitabha", "amitābha"]),
    ("shakyamuni", ["shakyamuni", "śākyamuni"]),
    ("vajrayogini", ["vajrayogini", "vajrayoginī", "dorje naljorma"]),
    ("yeshe_tsogyal", ["yeshe tsogyal", "ye shes mtsho rgyal"]),
    ("vajrakilaya", ["vajrakilaya", "vajrakīlāya", "phurba", "phur pa", "kilaya"]),
    ("hevajra", ["hevajra"]),
    ("chakrasamvara", ["chakrasamvara", "cakrasaṃvara", "heruka", "khorlo demchok", "demchok"]),
    ("yamantaka", ["yamantaka", "vajrabhairava"]),
    ("kalachakra", ["kalachakra", "kālacakra"]),
])

DHARMA_TERMS: PhraseTable = _table([
    ("sutra_term", ["sutra", "sūtra"]),
    ("tantra_term", ["tantra", "tantric"]),
    ("mantra_term", ["mantra", "dharani", "dhāraṇī"]),
    ("empowerment_term", ["empowerment", "reading transmission"]),
    ("samaya_term", ["samaya", "damtsig", "dam tshig"]),
    ("confession_term", ["confession", "downfall", "purification practice"]),
])

DHARMA_MILESTONES: PhraseTable = _table([
    ("refuge_taken", ["took refuge", "taken refuge", "took refuge vows"]),
    ("bodhisattva_vow", ["bodhisattva vow", "bodhisattva vows"]),
    ("ngondro_complete", ["completed ngondro", "completed ngöndro", "finished ngondro", "finished ngöndro"]),
    ("empowerment_received", ["received empowerment", "received an empowerment", "received the empowerment", "got the empowerment"]),
    ("ordained", ["got ordained", "took ordination", "was ordained"]),
    ("first_retreat", ["first retreat", "my first retreat"]),
    ("long_retreat", ["three year retreat", "3 year retreat", "solitary retreat", "long retreat"]),
])

# (family prefix, table, strength); order is the emission order under the per-entry cap.
DHARMA_FAMILIES: Tuple[Tuple[str, PhraseTable, float], ...] = (
    ("dharma:milestone:", DHARMA_MILESTONES, 0.40),
    ("dharma:vehicle:", DHARMA_VEHICLES, 0.35),
    ("dharma:school:", DHARMA_SCHOOLS, 0.35),
    ("dharma:practice:", DHARMA_PRACTICES, 0.35),
    ("dharma:deity:", DHARMA_DEITIES, 0.35),
    ("dharma:role:", DHARMA_ROLES, 0.30),
    ("dharma:experience:", DHARMA_EXPERIENCE, 0.30),
    ("dharma:term:", DHARMA_TERMS, 0.25),
)


# --- Explicit deactivation ------------------------------------------------

DEACTIVATION_MARKERS: Tuple[str, ...] = compile_phrases([
    "not anymore", "no longer", "it's fine now", "it is fine now",
    "stop doing that", "don't do that", "do not do that", "you can stop",
    "i don't need that", "i do not need that",
])

DEACTIVATION_STRENGTH = -0.6

# (kind name, key, phrases naming the thing being released)
STICKY_DEACTIVATION_TARGETS: Tuple[Tuple[str, str, Tuple[str, ...]], ...] = (
    ("constraint_trigger", "trigger:noise", compile_phrases(NOISE_PHRASES)),
    ("constraint_trigger", "trigger:bright_light", compile_phrases(BRIGHT_LIGHT_PHRASES)),
    ("constraint_trigger", "trigger:crowds", compile_phrases(CROWD_PHRASES)),
    ("constraint_trigger", "trigger:hierarchy_games", compile_phrases(HIERARCHY_PHRASES)),
    ("constraint_trigger", "trigger:being_observed", compile_phrases(OBSERVED_PHRASES)),
    ("constraints_sensitivity", "sensory_noise", compile_phrases(NOISE_PHRASES)),
    ("workflow_preference", "question_light", compile_phrases(["stop asking questions", "no questions", "stop with the questions"])),
)
