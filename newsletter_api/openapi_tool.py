"""Write or verify the committed OpenAPI document for the HTTP surface."""

import argparse
import json


def _document_text() -> str:
    from newsletter_api.main import app

    doc = app.openapi()
    return json.dumps(doc, indent=2, sort_keys=True) + "\n"


def _write(path: str) -> str:
    text = _document_text()
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return text


def _check(path: str) -> bool:
    try:
        with open(path, "r", encoding="utf-8") as f:
            have = f.read()
    except FileNotFoundError:
        return False
    return have == _document_text()


def main(argv=None):
    ap = argparse.ArgumentParser(prog="newsletter-openapi")
    ap.add_argument("--out", default="openapi.json")
    ap.add_argument("--check", action="store_true")
    a = ap.parse_args(argv)
    if a.check:
        if not _check(a.out):
            print(
                "openapi.json out of date. Regenerate with:\n"
                f"  python -m newsletter_api.openapi_tool --out {a.out}"
            )
            raise SystemExit(1)
        print("openapi.json up-to-date")
    else:
        text = _write(a.out)
        print(f"Wrote {a.out} ({len(text)} bytes)")


if __name__ == "__main__":
    main()
