"""Centralized application constants: single source of truth for hardcoded values."""

# --- Session cookie ---
COOKIE_NAME = "easyscrapy_session"

# --- Scraping sessions ---
SESSION_ID_PREFIX = "sess"
DEFAULT_RESULTS_LIMIT = 3
MAX_RESULTS_LIMIT = 2000
PREVIEW_ITEMS_COUNT = 3
DOWNLOAD_TOKEN_BYTES = 20  # hex-encoded -> 40 chars
DOWNLOAD_EXPIRY_DAYS = 30
MARKETPLACE_URL_PATTERN = r"^https://(www\.)?(facebook|linkedin)\.com/marketplace/[\w-]+"
FACEBOOK_PAGE_URL_PATTERN = r"^https://(www\.|m\.|web\.)?facebook\.com/[\w.\-]+/?"

# --- Actor platform (Apify) ---
ACTOR_RUN_MEMORY_MB = 2048
ACTOR_WAIT_FOR_FINISH = 30  # seconds
ACTOR_START_TIMEOUT = 60  # seconds
ACTOR_DATASET_TIMEOUT = 30  # seconds
ACTOR_EXPECTED_RUN_SECONDS = 120  # used for the progress estimate
ACTOR_WEBHOOK_EVENTS = [
    "ACTOR.RUN.SUCCEEDED",
    "ACTOR.RUN.FAILED",
    "ACTOR.RUN.TIMED_OUT",
    "ACTOR.RUN.ABORTED",
]
ACTOR_FAILED_STATUSES = {"FAILED", "ABORTED", "TIMED-OUT", "TIMED_OUT", "ERROR"}
ACTOR_ITEMS_LIMIT = 5000

# --- Facebook page extraction ---
MAX_PAGE_URLS = 20
DEFAULT_POSTS_PER_PAGE = 50
DEFAULT_COMMENTS_PER_POST = 20
MAX_COMMENTED_POSTS = 50
PAGE_ITEM_TYPES = {"info": "page_info", "posts": "post", "comments": "comment"}
AUDIT_SAMPLE_POSTS = 15

# --- Brand mentions ---
MENTION_TYPES = ("recommendation", "question", "complaint")
MENTION_SENTIMENTS = ("positive", "neutral", "negative")
MENTION_PRIORITIES = ("low", "medium", "high", "urgent")
MENTION_RESPONSE_TIMES = (5, 12, 60, 180, 1440)  # minutes
MENTION_MODEL = "openai/gpt-4o-mini"
MENTION_POSITIVE_WORDS = ("recommande", "excellent", "super", "merci", "bravo")
MENTION_NEGATIVE_WORDS = ("problème", "probleme", "mauvais", "déçu", "decu", "arnaque", "remboursement")

# --- Scraped items ---
ITEM_TITLE_MAX = 500
ITEM_PRICE_MAX = 100
ITEM_LOCATION_MAX = 255
ITEM_URL_MAX = 1024
ITEM_INSERT_CHUNK = 100
MAX_ITEM_IMAGES = 3
MGA_NEGOTIABLE_THRESHOLD = 1000

# --- Export ---
EXPORT_FILENAME_PREFIX = "EasyScrapy"
EXPORT_DESCRIPTION_MAX = 500
EXPORT_COLUMNS = [
    ("external_id", "ID Annonce"),
    ("title", "Titre"),
    ("price", "Prix"),
    ("description", "Description"),
    ("location", "Localisation"),
    ("url", "URL Annonce"),
    ("posted_at", "Date Publication"),
    ("image_url", "Image Principale"),
    ("image_count", "Nombre d'Images"),
    ("image_1", "Image 1"),
    ("image_2", "Image 2"),
    ("image_3", "Image 3"),
]

# --- Credits ---
COST_MATRIX = {
    "marketplace": {"per_item": 0.5},
    "facebook_pages": {"per_page": 0.5, "per_post": 0.1},
    "facebook_posts": {"per_post": 0.5},
    "comments": {"per_comment": 0.02, "per_post": 0.1},
    "ai_analysis": {"per_page": 2.0, "per_post": 0.05},
    "benchmark": {"per_page": 2.0, "per_post": 0.1, "ai_analysis": 3.0, "report_generation": 1.0},
    "mentions": {"per_mention": 0.05, "per_keyword": 0.1},
    "automation": {"base_cost": 1.0},
}
TRIAL_CREDITS_TOTAL = 4.0
TRIAL_CREDITS_BREAKDOWN = {"facebook_posts": 1.0, "facebook_pages": 0.5, "marketplace": 2.5}
TRIAL_EXPIRATION_DAYS = 7
LOCAL_IPS = {"::1", "127.0.0.1", "::ffff:127.0.0.1", "unknown", "testclient"}

# --- AI models (OpenRouter ids) and their cost multipliers ---
AI_MODELS = [
    {"id": "google/gemini-2.5-flash", "name": "Gemini 2.5 Flash", "provider": "Google",
     "cost_multiplier": 1.0, "context_window": 1_000_000, "recommended": True, "default": True},
    {"id": "openai/gpt-4o-mini", "name": "GPT-4o Mini", "provider": "OpenAI",
     "cost_multiplier": 1.5, "context_window": 128_000, "recommended": False, "default": False},
    {"id": "google/gemini-2.5-pro", "name": "Gemini 2.5 Pro", "provider": "Google",
     "cost_multiplier": 3.0, "context_window": 2_000_000, "recommended": False, "default": False},
    {"id": "openai/gpt-4o", "name": "GPT-4o", "provider": "OpenAI",
     "cost_multiplier": 5.0, "context_window": 128_000, "recommended": False, "default": False},
    {"id": "anthropic/claude-3.5-sonnet", "name": "Claude 3.5 Sonnet", "provider": "Anthropic",
     "cost_multiplier": 8.0, "context_window": 200_000, "recommended": False, "default": False},
]
ANALYSIS_SAMPLE_ITEMS = 50

# --- MVola ---
MVOLA_TOKEN_SCOPE = "EXT_INT_MVOLA_SCOPE"
MVOLA_MERCHANT_PAY_PATH = "/mvola/mm/transactions/type/merchantpay/1.0.0/"
MVOLA_DESCRIPTION_MAX = 50
MVOLA_DESCRIPTION_PATTERN = r"^[a-zA-Z0-9\s\-._,]*$"
MVOLA_MSISDN_PATTERN = r"^[0-9]{10,15}$"
MVOLA_CURRENCY = "Ar"

# --- Stripe decline codes -> user-facing guidance ---
PAYMENT_ERROR_MESSAGES = {
    "card_declined": (
        "Votre carte a été refusée. Veuillez vérifier vos informations bancaires ou utiliser une autre carte."
    ),
    "insufficient_funds": (
        "Fonds insuffisants sur votre carte. Veuillez utiliser une autre carte ou contacter votre banque."
    ),
    "expired_card": "Votre carte a expiré. Veuillez utiliser une carte valide.",
    "incorrect_cvc": "Le code de sécurité (CVC) de votre carte est incorrect.",
    "processing_error": "Une erreur temporaire s'est produite lors du traitement de votre paiement.",
    "network_error": "Problème de connexion réseau. Veuillez réessayer.",
    "user_cancelled": "Le paiement a été annulé. Vous pouvez réessayer quand vous voulez.",
}
PAYMENT_ERROR_FALLBACK = "Une erreur inattendue s'est produite lors du paiement. Veuillez réessayer."

# --- HTTP Client ---
HTTP_TOTAL_TIMEOUT = 180  # seconds
HTTP_CONNECT_TIMEOUT = 10  # seconds

# --- Worker ---
ARQ_MAX_JOBS = 10
ARQ_JOB_TIMEOUT = 600  # seconds (10 min)

# --- Scheduled scrapes ---
SCHEDULE_FREQUENCIES = {"daily": 1, "weekly": 7, "monthly": 30}  # days
SCHEDULE_ID_PREFIX = "sched"
EXECUTION_ID_PREFIX = "exec"

# --- Auth tokens ---
VERIFICATION_TOKEN_HOURS = 24
RESET_TOKEN_HOURS = 1

# --- Pagination ---
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
