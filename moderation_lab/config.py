"""
Central configuration for the moderation lab.

Flat-constant interface read by the queue, the provider processors and the
API lifespan.  Values marked ``# STATUS: ACTIVE`` are consumed by running
code; provider tunables are copied into the ``ProviderRegistry`` at startup
and may be changed at runtime from the teacher dashboard.
"""
from pathlib import Path
from typing import Dict, List

# ── Paths ──────────────────────────────────────────────────────────────
ROOT_DIR = Path(__file__).parent                  # STATUS: ACTIVE; base path for all relative references
SCENARIO_IMAGE_DIR = ROOT_DIR / "static" / "scenarios"  # STATUS: ACTIVE; api/jobs/providers.py; scenario PNGs

# ── Queue ─────────────────────────────────────────────────────────────
MAX_QUEUE_SIZE = 100                              # STATUS: ACTIVE; api/jobs/manager.py; ceiling on queued + processing jobs
CANCELLED_REASON = "Cancelled by teacher"         # STATUS: ACTIVE; api/jobs/manager.py

# Per-provider defaults.  ``timeout_seconds`` bounds a single provider call;
# a timed-out call is recorded as an error result for that scenario only.
PROVIDER_DEFAULTS: Dict[str, Dict[str, object]] = {  # STATUS: ACTIVE; api/jobs/registry.py
    "openai": {
        "max_concurrent": 2,
        "cooldown_ms": 500,
        "is_enabled": True,
        "timeout_seconds": 60.0,
    },
    "anthropic": {
        "max_concurrent": 1,
        "cooldown_ms": 1000,
        "is_enabled": True,
        "timeout_seconds": 60.0,
    },
}
DEFAULT_PROVIDER = "openai"                       # STATUS: ACTIVE; fallback for unrecognised model names
PROVIDER_API_KEY_ENV: Dict[str, str] = {          # STATUS: ACTIVE; api/jobs/providers.py, validate_config
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}
DEFAULT_MODEL = "gpt-4o-mini"                     # STATUS: ACTIVE; api/schemas/queue.py

# ── Labels ────────────────────────────────────────────────────────────
# Order matters: normalisation takes the first label found in the raw text.
MODERATION_LABELS: List[str] = ["Allowed", "Prohibited", "Disturbing"]  # STATUS: ACTIVE
UNKNOWN_LABEL = "Unknown"                         # STATUS: ACTIVE
ERROR_LABEL = "Error"                             # STATUS: ACTIVE

# ── Prompt template ───────────────────────────────────────────────────
PROMPT_PLACEHOLDER = "{{STUDENT_PROMPT}}"         # STATUS: ACTIVE; api/jobs/manager.py
DEFAULT_PROMPT_TEMPLATE = (                       # STATUS: ACTIVE; seeded into the store on first start
    "You are a content moderation AI. You must classify the attached image "
    "based on the following moderation rules:\n\n"
    f"{PROMPT_PLACEHOLDER}\n\n"
    "The possible labels are:\n"
    "- ✅ Allowed\n"
    "- 🚫 Prohibited\n"
    "- ⚠️ Disturbing\n\n"
    "Only output the label name exactly as shown above (including the emoji). "
    "Do not include any other text."
)

# ── Scenarios ─────────────────────────────────────────────────────────
DEFAULT_SCENARIOS: List[Dict[str, object]] = [    # STATUS: ACTIVE; api/routers/queue.py
    {"id": 1, "text": "A Golden Retriever sleeping on a rug.", "expected": "Allowed", "image": "scenario_1.png"},
    {"id": 2, "text": "A sign that says 'Puppies for Sale - $500' next to a box of pups.", "expected": "Prohibited", "image": "scenario_2.png"},
    {"id": 3, "text": "A wild wolf howling in the snow.", "expected": "Prohibited", "image": "scenario_3.png"},
    {"id": 4, "text": "A dog with a bandage on its paw at a vet clinic.", "expected": "Disturbing", "image": "scenario_4.png"},
    {"id": 5, "text": "A dog wearing a lion's mane costume for Halloween.", "expected": "Allowed", "image": "scenario_5.png"},
    {"id": 6, "text": "A cartoon drawing of a blue dog.", "expected": "Allowed", "image": "scenario_6.png"},
    {"id": 7, "text": "A dog baring its teeth and growling at a mailman.", "expected": "Prohibited", "image": "scenario_7.png"},
    {"id": 8, "text": "A person holding a 'Free to Good Home - Adopt Me!' sign with a dog.", "expected": "Allowed", "image": "scenario_8.png"},
    {"id": 9, "text": "A delicious hot dog (sausage in a bun) on a plate with mustard.", "expected": "Prohibited", "image": "scenario_9.png"},
    {"id": 10, "text": "A therapy dog sitting quietly on a hospital bed with a patient.", "expected": "Disturbing", "image": "scenario_10.png"},
]

# ── Student history ───────────────────────────────────────────────────
MAX_PROMPTS_PER_STUDENT = 50                      # STATUS: ACTIVE; api/jobs/store.py

# ── Logging ───────────────────────────────────────────────────────────
LOG_LEVEL = "INFO"                                # STATUS: ACTIVE; api/main.py; "DEBUG", "INFO", "WARNING", "ERROR"
LOG_FORMAT = "structured"                         # STATUS: ACTIVE; api/main.py; "structured" or "json"


def validate_config() -> list:
    """Check config for common misconfigurations.

    Returns a list of dicts: [{"level": "WARNING"|"ERROR", "message": str}].
    Called on server startup.
    """
    import os

    issues = []

    # 1. Provider API keys missing → that provider's jobs will fail
    for provider, env_var in PROVIDER_API_KEY_ENV.items():
        if not os.environ.get(env_var, ""):
            issues.append({
                "level": "WARNING",
                "message": (
                    f"{env_var} is not set. Jobs routed to the '{provider}' provider "
                    "will fail until the key is configured."
                ),
            })

    # 2. Scenario images missing
    if not SCENARIO_IMAGE_DIR.exists():
        issues.append({
            "level": "WARNING",
            "message": f"SCENARIO_IMAGE_DIR ({SCENARIO_IMAGE_DIR}) does not exist. Every scenario will record an error.",
        })
    else:
        missing = [s["image"] for s in DEFAULT_SCENARIOS if not (SCENARIO_IMAGE_DIR / str(s["image"])).exists()]
        if missing:
            issues.append({
                "level": "WARNING",
                "message": f"Scenario images missing from {SCENARIO_IMAGE_DIR}: {', '.join(missing)}",
            })

    # 3. Default template must carry the placeholder
    if PROMPT_PLACEHOLDER not in DEFAULT_PROMPT_TEMPLATE:
        issues.append({
            "level": "ERROR",
            "message": f"DEFAULT_PROMPT_TEMPLATE does not contain {PROMPT_PLACEHOLDER}.",
        })

    # 4. Provider defaults sanity
    for provider, cfg in PROVIDER_DEFAULTS.items():
        if int(cfg.get("max_concurrent", 0)) < 1:
            issues.append({
                "level": "ERROR",
                "message": f"PROVIDER_DEFAULTS['{provider}'].max_concurrent must be >= 1.",
            })
    if DEFAULT_PROVIDER not in PROVIDER_DEFAULTS:
        issues.append({
            "level": "ERROR",
            "message": f"DEFAULT_PROVIDER '{DEFAULT_PROVIDER}' has no entry in PROVIDER_DEFAULTS.",
        })

    return issues
