from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_model import ERROR, CheckResult, CompilationType, Issue

SARIF_RULES = {
    ERROR: ("VER001", "VersionerError", "Header/library availability error"),
    "warning": ("VER002", "VersionerWarning", "Header/library availability warning"),
}


def build_report(
    types: Iterable[CompilationType],
    sanity: CheckResult,
    validation: CheckResult | None,
    mode: str | None,
) -> dict[str, Any]:
    issues: list[Issue] = list(sanity.issues)
    if validation is not None:
        issues.extend(validation.issues)

    validation_status = validation.status if validation is not None else "skipped"
    failed = not sanity.passed or validation_status == "fail"
    report = {
        "tool": {"name": TOOL_NAME, "version": TOOL_VERSION},
        "generated_at_utc": utc_timestamp_now(),
        "status": "fail" if failed else "pass",
        "mode": mode or "none",
        "matrix": [compilation_type.describe() for compilation_type in sorted(types)],
        "sanity": sanity.status,
        "validation": validation_status,
        "errors": [f"{issue.symbol}: {issue.describe()}" for issue in issues if issue.severity == ERROR],
        "warnings": [f"{issue.symbol}: {issue.describe()}" for issue in issues if issue.severity != ERROR],
        "issues": [issue.as_dict() for issue in issues],
    }
    validate_with_jsonschema("report", report)
    return report


def group_issues(issues: Iterable[dict[str, Any]]) -> dict[str, dict[str, list[dict[str, Any]]]]:
    grouped: dict[str, dict[str, list[dict[str, Any]]]] = {}
    for issue in issues:
        grouped.setdefault(issue["symbol"], {}).setdefault(issue["arch"] or "all", []).append(issue)
    return grouped


def _issue_line(issue: dict[str, Any]) -> str:
    levels = f" levels {join_values(issue['levels'])}" if issue["levels"] else ""
    where = f" @ {issue['location']}" if issue["location"] else ""
    return f"[{issue['severity']}] {issue['category']}{levels}: {issue['message']}{where}"


def print_report(report: dict[str, Any]) -> None:
    print(f"versioner status: {report.get('status', 'unknown')}")
    print(f"Compilation types: {len(report.get('matrix', []))}")
    print(f"Sanity check: {report.get('sanity')}")
    print(f"Cross-validation: {report.get('validation')} (mode: {report.get('mode')})")
    print(f"Errors: {len(report.get('errors', []))}")
    print(f"Warnings: {len(report.get('warnings', []))}")

    grouped = group_issues(report.get("issues", []))
    for symbol in sorted(grouped):
        print(f"{symbol}:")
        for arch in sorted(grouped[symbol]):
            print(f"  {arch}:")
            for issue in grouped[symbol][arch]:
                print(f"    - {_issue_line(issue)}")


def write_markdown_report(path: Path, report: dict[str, Any]) -> None:
    lines: list[str] = []
    lines.append(f"# versioner Report ({report.get('status', 'unknown')})")
    lines.append("")
    lines.append(f"- Compilation types: `{len(report.get('matrix', []))}`")
    lines.append(f"- Sanity check: `{report.get('sanity')}`")
    lines.append(f"- Cross-validation: `{report.get('validation')}`")
    lines.append(f"- Mode: `{report.get('mode')}`")
    lines.append(f"- Errors: `{len(report.get('errors', []))}`")
    lines.append(f"- Warnings: `{len(report.get('warnings', []))}`")
    lines.append("")

    grouped = group_issues(report.get("issues", []))
    if grouped:
        lines.append("## Issues")
        lines.append("")
        for symbol in sorted(grouped):
            lines.append(f"### `{symbol}`")
            for arch in sorted(grouped[symbol]):
                for issue in grouped[symbol][arch]:
                    lines.append(f"- `{arch}` {_issue_line(issue)}")
            lines.append("")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def split_location(location: str) -> tuple[str, int, int] | None:
    parts = location.rsplit(":", 2)
    if len(parts) != 3 or not parts[1].isdigit() or not parts[2].isdigit():
        return None
    return parts[0], int(parts[1]), int(parts[2])


def build_sarif_results(report: dict[str, Any]) -> list[dict[str, Any]]:
    results: list[dict[str, Any]] = []
    for issue in report.get("issues", []):
        rule_id = SARIF_RULES.get(issue["severity"], SARIF_RULES["warning"])[0]
        arch = issue["arch"] or "all"
        result: dict[str, Any] = {
            "ruleId": rule_id,
            "level": issue["severity"],
            "message": {
                "text": f"[{arch}] {issue['symbol']}: {issue['message']}",
            },
            "properties": {
                "category": issue["category"],
                "levels": issue["levels"],
            },
        }
        parsed = split_location(issue["location"]) if issue["location"] else None
        if parsed is not None:
            filename, line, column = parsed
            result["locations"] = [
                {
                    "physicalLocation": {
                        "artifactLocation": {"uri": Path(filename).as_posix()},
                        "region": {"startLine": line, "startColumn": column},
                    }
                }
            ]
        results.append(result)
    return results


def write_sarif_report(path: Path, report: dict[str, Any]) -> None:
    rules = [
        {
            "id": rule_id,
            "name": name,
            "shortDescription": {"text": text},
            "defaultConfiguration": {"level": level},
        }
        for level, (rule_id, name, text) in SARIF_RULES.items()
    ]
    payload = {
        "$schema": "https://json.schemastore.org/sarif-2.1.0.json",
        "version": "2.1.0",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": TOOL_NAME,
                        "version": TOOL_VERSION,
                        "rules": rules,
                    }
                },
                "results": build_sarif_results(report),
            }
        ],
    }
    write_json(path, payload)
