"""
Songsmith - guardrailed LLM workflows for song lyrics and melodies
Main entry point for the HTTP server
"""
from dotenv import load_dotenv

from songsmith.server.main import main

# Load environment variables from .env file (for development)
load_dotenv()


if __name__ == "__main__":
    main()
