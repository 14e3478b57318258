"""Core constants for the anuvad inference workers.

The Whisper transcriber consumes 16kHz mono float32 audio. Transcription
runs over a rolling 30 second window and is attempted once at least
3 seconds of fresh audio has arrived.
"""

# Audio format requirements
SAMPLE_RATE: int = 16000  # Hz - required by Whisper feature extraction
BYTES_PER_SAMPLE: int = 2  # 16-bit PCM input from capture devices

# Rolling window held by the streaming buffer
CHUNK_SECONDS: int = 30
MAX_SAMPLES: int = 480000  # 16000 * 30

# Fresh audio required before another transcription attempt
INFERENCE_INTERVAL_SECONDS: int = 3
INFERENCE_THRESHOLD: int = 48000  # 16000 * 3

# Decoding limits
MAX_NEW_TOKENS: int = 512  # translator
MAX_TRANSCRIBE_TOKENS: int = 224  # whisper decoder

# Model identification
WHISPER_REPO: str = "openai/whisper-small"
TRANSLATOR_REPO: str = "TinyLlama/TinyLlama-1.1B-Chat-v1.0"
