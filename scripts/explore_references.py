"""
Script to explore what the hub documents reference
"""
import sys
from collections import Counter
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from hub_checks.link_audit.config import PROJECT_ROOT, load_manifest, get_documents
from hub_checks.link_audit.markdown_refs import MarkdownDocument

manifest = load_manifest()

print("="*80)
print("HUB DOCUMENT REFERENCES")
print("="*80)

for document_path in get_documents(manifest):
    source = document_path.relative_to(PROJECT_ROOT).as_posix()
    document = MarkdownDocument.from_file(document_path, source=source)

    print(f"\n{source}")
    print("-"*80)
    print(f"Headings: {len(document.headings)}")
    print(f"Anchors: {', '.join(sorted(document.anchors))}")
    print(f"Reference definitions: {len(document.definitions)}")

    kinds = Counter(ref.kind for ref in document.references)
    print(f"References: {len(document.references)} ({', '.join(f'{k}={v}' for k, v in sorted(kinds.items()))})")

    for ref in document.references:
        marker = "img" if ref.is_image else "   "
        print(f"  {ref.line:4d} {marker} {ref.kind:8} {ref.target}")

    if document.undefined_labels:
        print("Undefined labels:")
        for line, label in document.undefined_labels:
            print(f"  {line:4d} [{label}]")

print("\n" + "="*80)
print(f"Components in manifest: {len(manifest['components'])}")
for key, component in manifest["components"].items():
    print(f"  {key:26} {component['url']}")
print("="*80)
