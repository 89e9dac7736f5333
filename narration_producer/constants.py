"""All magic numbers and policy constants."""

SEGMENT_SPLIT_THRESHOLD = 1000      # chars; split segments longer than this
NARRATOR_LABEL = "Narrator"         # implicit speaker of untagged text
DEFAULT_EMOTION = "neutral"
DEFAULT_GENDER = "female"           # gender tie-break, used everywhere
CREATURE_GENRES = ("vampire", "werewolf", "fairy")
PAUSE_SAME_SPEAKER_MS = 225         # ms pause when the same speaker continues
PAUSE_SPEAKER_CHANGE_MS = 375       # ms pause at speaker changes
PAUSE_NARRATOR_TRANSITION_MS = 525  # ms pause when a change touches the narrator
WORDS_PER_SECOND = 2.5              # speaking rate for duration estimates
MIN_SEGMENT_MS = 500                # shortest placeholder clip
PLACEHOLDER_FRAME_RATE = 24000      # placeholder audio sample rate
PLACEHOLDER_TONE_HZ = 440.0         # optional placeholder tone
PLACEHOLDER_TONE_LEVEL = 0.05       # tone amplitude (0.0–1.0)
EMOTION_INTENSITY_MAX = 2.0         # upper clamp for emotion intensity
STABILITY_BLEND_WEIGHT = 0.3        # stability vs personality.intensity
STYLE_BLEND_WEIGHT = 0.4            # style vs personality.formality
MYSTIQUE_SIMILARITY_GAIN = 0.2      # similarity boost gain from mystique
MIN_SIMILARITY_BOOST = 0.4
SPEAKER_BOOST_DOMINANCE = 0.6       # dominance above this forces speaker boost
OUTPUT_BITRATE = "192k"             # MP3 output bitrate
OUTPUT_FORMAT = "mp3"
TTS_RETRY_COUNT = 3                 # max attempts per TTS segment
TTS_RETRY_BASE_DELAY = 1.0          # seconds; base delay for exponential backoff
TTS_RATE = "-10%"                   # edge-tts base speech rate
PROVIDER_TIMEOUT = 60.0             # seconds per synthesis call
MAX_CONCURRENT_SEGMENTS = 3         # parallel synthesis calls per job
PROGRESS_GENERATION_SHARE = 90      # percent of the bar used by segment generation
PROGRESS_ASSEMBLY_PERCENT = 95
SECONDS_PER_SEGMENT_ESTIMATE = 3    # processing time guess before any segment finishes
JOB_RETENTION_SECONDS = 3600        # finished jobs are evicted after this
LARGE_CAST_THRESHOLD = 6
NEUTRAL_HEAVY_RATIO = 0.7
MIN_EMOTION_VARIETY = 3
ELEVENLABS_API_URL = "https://api.elevenlabs.io/v1"
ELEVENLABS_MODEL_ID = "eleven_multilingual_v2"
OUTPUT_DIR = "output"
VERSION = "0.1.0"
