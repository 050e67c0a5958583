import os
import sys
import argparse
from pathlib import Path
from urllib.parse import urlparse
from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / '.env')

errors = []
warnings = []

parser = argparse.ArgumentParser(description='Validate the AI service environment')
parser.add_argument('--strict', '-s', action='store_true', help='Convert warnings to failures')
parser.add_argument('--offline', action='store_true', help='Skip provider and Redis connectivity checks')
args = parser.parse_args()
STRICT = args.strict

required = {
    'server': ['ENVIRONMENT', 'HOST', 'PORT'],
}

def check_presence(cat, keys):
    for k in keys:
        if not os.getenv(k):
            errors.append(f"{cat}: Missing {k}")

for cat, keys in required.items():
    check_presence(cat, keys)

llm_key = os.getenv('LLM_API_KEY') or os.getenv('GROQ_API_KEY') or os.getenv('OPENAI_API_KEY')
if not llm_key:
    if os.getenv('LLM_REQUIRED_FOR_READY', 'false').lower() in ('1', 'true', 'yes'):
        errors.append('llm: Missing LLM_API_KEY (or GROQ_API_KEY / OPENAI_API_KEY)')
    else:
        warnings.append('llm: no API key set; AI endpoints will return 500 until one is configured')

if not os.getenv('ADMIN_API_KEY'):
    warnings.append('ADMIN_API_KEY not set; POST /api/credits/grant is disabled')

# Format checks
try:
    port = int(os.getenv('PORT', '0'))
    if port < 1 or port > 65535:
        errors.append('PORT must be integer between 1 and 65535')
except ValueError:
    errors.append('PORT must be an integer')

base_url = os.getenv('LLM_BASE_URL', 'https://api.groq.com/openai/v1')
if urlparse(base_url).scheme not in ('http', 'https'):
    errors.append('LLM_BASE_URL must be an http(s) URL')

# Validate numeric env ranges
int_ranges = {
    'LEDGER_STARTING_CREDITS': ('500', 0, 1000000),
    'QUIZ_MAX_QUESTIONS': ('20', 1, 100),
    'FLASHCARD_MAX_COUNT': ('50', 1, 200),
    'MINDMAP_MAX_DEPTH': ('4', 1, 10),
    'MINDMAP_MAX_NODES': ('200', 1, 5000),
    'SUMMARY_CACHE_TTL': ('86400', 1, 30 * 86400),
    'HISTORY_MAX_ENTRIES': ('50', 1, 1000),
}
for name, (default, low, high) in int_ranges.items():
    try:
        value = int(os.getenv(name, default))
        if value < low or value > high:
            errors.append(f'{name} must be between {low} and {high}')
    except ValueError:
        errors.append(f'{name} must be an integer')

try:
    timeout = float(os.getenv('LLM_TIMEOUT_SECONDS', '60'))
    if timeout <= 0 or timeout > 600:
        errors.append('LLM_TIMEOUT_SECONDS must be between 0 and 600')
except ValueError:
    errors.append('LLM_TIMEOUT_SECONDS must be a number')

try:
    temperature = float(os.getenv('LLM_DEFAULT_TEMPERATURE', '0.7'))
    if temperature < 0.0 or temperature > 2.0:
        errors.append('LLM_DEFAULT_TEMPERATURE must be between 0.0 and 2.0')
except ValueError:
    errors.append('LLM_DEFAULT_TEMPERATURE must be a float')

redis_url = os.getenv('REDIS_URL')
if not redis_url:
    warnings.append('REDIS_URL not set; credits, flashcards and history will be kept in process memory')

if not args.offline:
    # Provider check - list models on the configured OpenAI-compatible endpoint
    if llm_key:
        import openai
        try:
            client = openai.OpenAI(api_key=llm_key, base_url=base_url, max_retries=0, timeout=10)
            client.models.list()
            print('LLM provider: API reachable')
        except openai.APIError as e:
            warnings.append(f'LLM provider check failed: {e}')

    # Redis check (optional)
    if redis_url:
        import redis
        try:
            r = redis.Redis.from_url(redis_url)
            if r.ping():
                print('Redis: OK')
        except redis.exceptions.RedisError as e:
            if os.getenv('REDIS_REQUIRED_FOR_READY', 'false').lower() in ('1', 'true', 'yes'):
                errors.append(f'Redis check failed: {e}')
            else:
                warnings.append(f'Redis check failed: {e}')

if errors:
    print('\nENV validation failed:')
    for e in errors:
        print(' -', e)
    sys.exit(1)

if warnings:
    print('\nWarnings:')
    for w in warnings:
        print(' -', w)
    if STRICT:
        print('\nStrict mode enabled: treating warnings as errors')
        sys.exit(1)

print('\nAll critical validations passed')
sys.exit(0)
