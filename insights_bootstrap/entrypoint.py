import logging
import os

logger = logging.getLogger("insights_bootstrap.entrypoint")


def service_command() -> list[str]:
  """Build the uvicorn command line for the status service."""
  host = os.getenv("INSIGHTS_HOST", "0.0.0.0")
  port = os.getenv("INSIGHTS_PORT", "8002")
  return ["uvicorn", "insights_bootstrap.main:app", "--host", host, "--port", port, "--no-server-header"]


def main() -> None:
  """Launch the status service under uvicorn."""
  logging.basicConfig(level=logging.INFO)
  args = service_command()
  logger.info("Starting status service on %s:%s", args[3], args[5])
  # Replace the current process so uvicorn receives SIGTERM directly.
  os.execvp("uvicorn", args)


if __name__ == "__main__":
  main()
