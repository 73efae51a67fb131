"""All magic numbers and configuration constants."""

# Layout templates: (name, type, description, percent of total, floor minutes)
LAYOUT_TEMPLATES = {
    "conference": [
        ("Welcome and Introduction", "introduction", "Opening remarks and welcome to attendees", 0.05, 5),
        ("Keynote Presentation", "keynote", "Main keynote speech by the featured speaker", 0.25, 30),
        ("Panel Discussion", "panel", "Expert panel discussing industry trends", 0.30, 45),
        ("Networking Break", "break", "Refreshments and networking opportunity", 0.10, 15),
        ("Q&A Session", "q_and_a", "Audience questions for speakers", 0.10, 15),
        ("Closing Remarks", "conclusion", "Summary and closing thoughts", 0.05, 10),
    ],
    "webinar": [
        ("Welcome and Introduction", "introduction", "Introduction to the webinar and speakers", 0.08, 5),
        ("Main Presentation", "presentation", "Core content presentation", 0.50, 30),
        ("Product Demonstration", "demo", "Live demonstration or walkthrough", 0.20, 15),
        ("Q&A Session", "q_and_a", "Answering attendee questions", 0.17, 15),
        ("Closing and Next Steps", "conclusion", "Summary and call to action", 0.05, 5),
    ],
    "workshop": [
        ("Welcome and Overview", "introduction", "Introduction to the workshop and objectives", 0.08, 10),
        ("Theoretical Background", "theory", "Explanation of key concepts", 0.20, 20),
        ("Practical Exercise", "practical", "Hands-on activity for participants", 0.40, 45),
        ("Break", "break", "Short break for refreshments", 0.08, 10),
        ("Group Discussion", "group_work", "Collaborative problem-solving", 0.15, 20),
        ("Conclusion and Takeaways", "conclusion", "Summary and next steps", 0.09, 10),
    ],
    "corporate": [
        ("Welcome and Introduction", "introduction", "Opening remarks and introductions", 0.08, 5),
        ("Meeting Agenda", "agenda", "Overview of topics to be covered", 0.05, 5),
        ("Business Update", "presentation", "Presentation of key business metrics and updates", 0.40, 30),
        ("Strategic Discussion", "discussion", "Discussion of strategic initiatives", 0.25, 20),
        ("Action Items", "action_items", "Assignment of tasks and responsibilities", 0.12, 10),
        ("Closing Remarks", "conclusion", "Summary and next steps", 0.10, 5),
    ],
    "general": [
        ("Welcome and Introduction", "introduction", "Opening remarks and welcome", 0.10, 5),
        ("Main Content", "main_content", "Primary event content", 0.60, 30),
        ("Q&A Session", "q_and_a", "Audience questions and discussion", 0.20, 15),
        ("Closing Remarks", "conclusion", "Summary and thank you", 0.10, 5),
    ],
}
CATEGORY_PRIORITY = ("conference", "webinar", "workshop", "corporate")  # substring match order
FALLBACK_CATEGORY = "general"

# Total minutes when an event carries no explicit duration
DEFAULT_TOTAL_MINUTES = {"conference": 180, "webinar": 90, "workshop": 120}
DEFAULT_TOTAL_MINUTES_FALLBACK = 60

# Script expansion
COMPOUND_SEGMENT_TYPES = ("keynote", "panel", "presentation", "workshop")
QA_SEGMENT_TYPE = "q_and_a"
QA_PAIR_SEGMENT_TYPE = "q_and_a_pair"
INTRO_SATELLITE_FRACTION = 0.10     # of layout duration
TRANSITION_SATELLITE_FRACTION = 0.05
QA_PAIR_FRACTION = 0.20             # per pair
QA_PAIR_COUNT = 3
SUB_ORDER_STRIDE = 10               # legacy order = layout_order * 10 + sub_order
CHUNK_ORDER_STRIDE = 100            # legacy chunk order = parent order * 100 + chunk_index

# Chunking
CHUNK_TARGET_WORDS = 50

# Statuses
SCRIPT_STATUSES = ("draft", "editing", "generating", "generated")
EVENT_STATUS_DRAFT = "draft"
EVENT_STATUS_LAYOUT_READY = "layout_ready"
EVENT_STATUS_SCRIPTING = "scripting"
EVENT_STATUS_AUDIO_READY = "audio_ready"
LAYOUT_GENERATED_BY = "system-template"

# Timeline
CLOCK_FORMAT = "%I:%M %p"           # "09:05 AM"

# Prosody / speech rendering
BREATHE_PAUSE_MS = 250              # silence inserted for [BREATHE]
TTS_RETRY_COUNT = 3                 # max retries per TTS clip
TTS_RETRY_BASE_DELAY = 1.0          # seconds, base delay for exponential backoff
TTS_RATE = "-5%"                    # emcee pace: slightly slower than default
NARRATOR_VOICE = "en-US-GuyNeural"  # default emcee voice

# Storage
DB_PATH = "output/emcee.db"
SQLITE_TIMEOUT_SECONDS = 30.0
VERSION = "0.1.0"
