import ast
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]


def _imports(package_dir: Path):
    for py_file in package_dir.rglob("*.py"):
        tree = ast.parse(py_file.read_text(encoding="utf-8"), filename=str(py_file))
        rel_path = py_file.relative_to(REPO_ROOT)
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                for alias in node.names:
                    yield rel_path, node.lineno, alias.name
            elif isinstance(node, ast.ImportFrom):
                yield rel_path, node.lineno, node.module or ""


def _violations(layer: str, forbidden: str):
    found = []
    for rel_path, lineno, module in _imports(REPO_ROOT / "batchmedia" / layer):
        if module == forbidden or module.startswith(forbidden + "."):
            found.append(f"{rel_path}:{lineno} imports {module}")
    return found


def test_pipeline_layer_does_not_import_ui_layer():
    """Pipeline layer must not import from UI layer directly."""
    violations = _violations("pipeline", "batchmedia.ui")
    assert not violations, "Pipeline layer must not import UI layer:\n" + "\n".join(violations)


def test_domain_layer_has_no_upward_imports():
    violations = []
    for layer in ("batchmedia.pipeline", "batchmedia.infrastructure", "batchmedia.ui", "batchmedia.config"):
        violations.extend(_violations("domain", layer))
    assert not violations, "Domain layer must stay self-contained:\n" + "\n".join(violations)
