from customer_stories.scraper.run import _cli_entrypoint

if __name__ == "__main__":
    # Configuration comes from the environment (BASE_URL, STORIES_DATA_DIR, ...)
    # or the command-line flags; see ``--help``.
    raise SystemExit(_cli_entrypoint())
