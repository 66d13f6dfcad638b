# Source adapters: each one writes only rows tagged with its own source
from .manual import ManualPriorityAdapter
from .fires import FiresSyncAdapter, SyncCooldown
from .ai_recommender import AIRecommendationAdapter, validate_candidates
