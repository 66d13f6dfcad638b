RECOMMENDER_SYSTEM_PROMPT = (
    "You are a productivity expert who analyzes goals and creates actionable "
    "priorities. Always respond with valid JSON."
)

RECOMMENDER_PROMPT = """
You help a user decide what to work on TODAY ({day_of_week}{day_kind}).
{intention}
RULES:
- Recommend 3-5 actionable priorities for today.
- Fires items are synced separately; do not recommend them.
- Never recommend completed items.
- Never duplicate an existing priority.
- {day_rule}

GOALS (highest priority first):
{goals}

ACTIVE PROJECTS:
{projects}

ACTIVE TASKS:
{tasks}

HABITS:
{habits}

RECENTLY COMPLETED (context only, do not recommend):
{completed}

EXISTING PRIORITIES (do not duplicate):
{existing}

For each priority give:
1. an actionable title starting with a verb
2. why it matters today
3. a priority score between 60 and 85 (fires use 90-95)
4. the project or task it relates to, if any

Reply with a JSON array only:
[
  {{
    "title": "Actionable priority title",
    "description": "Why this is important today",
    "priority_score": 75,
    "source_type": "project|task|manual",
    "source_id": "id-if-applicable",
    "goal_id": "id-of-supporting-goal"
  }}
]
"""

WEEKEND_RULE = "Weekend: favour personal development, health, learning or low-pressure work."
WORKDAY_RULE = "Workday: favour high-impact work that advances the top goals."

# Conversational variant: prepended to RULES when the user states an intention
INTENTION_SECTION = """
USER'S DAILY INTENTION: "{daily_intention}"
{details}
Every recommendation must directly support this intention and suit a
{energy_level} energy level with {time_available} available.
"""
