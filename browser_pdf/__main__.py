"""Run the service with uvicorn: python -m browser_pdf"""

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "browser_pdf.app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8001")),
    )


if __name__ == "__main__":
    main()
