import os

# Tests never talk to Firebase
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("DEBUG_EVENTS", "true")
