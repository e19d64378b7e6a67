"""Vision providers: mock, OpenAI, Google Cloud Vision and the local placeholder."""
