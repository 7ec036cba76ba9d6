import uvicorn
import sys
from pathlib import Path


def main():
    """
    Run the FastAPI application using uvicorn
    """
    current_dir = Path(__file__).parent

    # Make the permit_agent package importable without installation
    sys.path.insert(0, str(current_dir))

    uvicorn.run(
        "permit_agent.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_dirs=[str(current_dir)]
    )


if __name__ == "__main__":
    main()
