"""Pattern-based vulnerability scanner.

Every source line is matched against a fixed rule table. A finding
records the matched line and the innermost symbol that contains it, and
is reported once per (line, rule).
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional

from ..ast_parser.models import ParsedFile, Symbol
from .models import Severity, VulnerabilityFinding

logger = logging.getLogger(__name__)

_JS = frozenset({"javascript", "typescript"})
_PY = frozenset({"python"})
_GO = frozenset({"go"})

_COMMENT_LINE = re.compile(r"^\s*(#|//|/\*|\*)")


@dataclass(frozen=True)
class VulnerabilityRule:
    id: str
    pattern: "re.Pattern"
    severity: Severity
    title: str
    description: str
    recommendation: str
    cwe: Optional[str] = None
    languages: Optional[FrozenSet[str]] = None  # None = every language

    def applies_to(self, language: str) -> bool:
        return self.languages is None or language in self.languages


RULES: List[VulnerabilityRule] = [
    VulnerabilityRule(
        id="code-injection",
        pattern=re.compile(r"(?<![\w.])eval\s*\("),
        severity=Severity.HIGH,
        title="Use of eval()",
        description="eval() executes arbitrary code built from a string.",
        recommendation="Parse the input explicitly (e.g. json.loads / JSON.parse) instead of evaluating it.",
        cwe="CWE-95",
        languages=_JS | _PY,
    ),
    VulnerabilityRule(
        id="code-injection",
        pattern=re.compile(r"(?<![\w.])exec\s*\("),
        severity=Severity.HIGH,
        title="Use of exec()",
        description="exec() runs arbitrary Python code.",
        recommendation="Replace dynamic execution with explicit dispatch.",
        cwe="CWE-95",
        languages=_PY,
    ),
    VulnerabilityRule(
        id="command-injection",
        pattern=re.compile(r"\bsubprocess\.\w+\(.*shell\s*=\s*True|\bos\.(?:system|popen)\s*\("),
        severity=Severity.HIGH,
        title="Shell command execution",
        description="Commands run through a shell can be injected into when they include user input.",
        recommendation="Call subprocess with an argument list and shell=False.",
        cwe="CWE-78",
        languages=_PY,
    ),
    VulnerabilityRule(
        id="command-injection",
        pattern=re.compile(r"\bchild_process\b.*\bexec(?:Sync)?\s*\(|(?<![\w.])execSync\s*\(|\bcp\.exec\s*\("),
        severity=Severity.HIGH,
        title="Shell command execution",
        description="child_process exec runs its argument through a shell.",
        recommendation="Use execFile/spawn with an argument array.",
        cwe="CWE-78",
        languages=_JS,
    ),
    VulnerabilityRule(
        id="command-injection",
        pattern=re.compile(r"\bexec\.Command\(\s*\"(?:sh|bash|cmd)\""),
        severity=Severity.HIGH,
        title="Shell command execution",
        description="Running a shell with a composed command line allows injection.",
        recommendation="Invoke the binary directly with separate arguments.",
        cwe="CWE-78",
        languages=_GO,
    ),
    VulnerabilityRule(
        id="insecure-deserialization",
        pattern=re.compile(r"\b(?:pickle|cPickle|marshal|dill)\.loads?\s*\("),
        severity=Severity.HIGH,
        title="Unsafe deserialization",
        description="Unpickling untrusted data can execute arbitrary code.",
        recommendation="Deserialize untrusted data with a data-only format such as JSON.",
        cwe="CWE-502",
        languages=_PY,
    ),
    VulnerabilityRule(
        id="insecure-deserialization",
        pattern=re.compile(r"\byaml\.load\s*\((?!.*Loader\s*=\s*(?:yaml\.)?(?:Safe|CSafe)Loader)"),
        severity=Severity.MEDIUM,
        title="yaml.load without SafeLoader",
        description="yaml.load with the default loader can construct arbitrary objects.",
        recommendation="Use yaml.safe_load or pass Loader=yaml.SafeLoader.",
        cwe="CWE-502",
        languages=_PY,
    ),
    VulnerabilityRule(
        id="hardcoded-secret",
        pattern=re.compile(
            r"(?i)\b\w*(?:password|passwd|secret|api[_-]?key|access[_-]?key|private[_-]?key|token)\w*\s*"
            r"(?::\s*\w+\s*)?[:=]\s*[\"'][^\"'\s]{8,}[\"']"
        ),
        severity=Severity.HIGH,
        title="Hard-coded secret",
        description="A credential appears to be committed in source code.",
        recommendation="Load secrets from the environment or a secret manager.",
        cwe="CWE-798",
    ),
    VulnerabilityRule(
        id="sql-injection",
        pattern=re.compile(
            r"[\"'`]\s*(?:SELECT|INSERT|UPDATE|DELETE)\b[^\"'`]*[\"'`]\s*(?:\+|%)"
            r"|\bf[\"'][^\"']*\b(?:SELECT|INSERT|UPDATE|DELETE)\b[^\"']*\{"
            r"|`[^`]*\b(?:SELECT|INSERT|UPDATE|DELETE)\b[^`]*\$\{"
            r"|[\"'](?:SELECT|INSERT|UPDATE|DELETE)\b[^\"']*[\"']\s*\.format\(",
            re.IGNORECASE,
        ),
        severity=Severity.HIGH,
        title="SQL built from strings",
        description="SQL text is assembled by concatenation or interpolation.",
        recommendation="Use parameterized queries.",
        cwe="CWE-89",
    ),
    VulnerabilityRule(
        id="xss",
        pattern=re.compile(r"\.(?:innerHTML|outerHTML)\s*=|dangerouslySetInnerHTML|document\.write\s*\("),
        severity=Severity.MEDIUM,
        title="Unescaped HTML injection",
        description="Raw HTML is written into the DOM.",
        recommendation="Use textContent or sanitize the HTML before inserting it.",
        cwe="CWE-79",
        languages=_JS,
    ),
    VulnerabilityRule(
        id="weak-hash",
        pattern=re.compile(
            r"\bhashlib\.(?:md5|sha1)\s*\(|createHash\(\s*[\"'](?:md5|sha1)[\"']|\b(?:md5|sha1)\.New\s*\("
        ),
        severity=Severity.MEDIUM,
        title="Weak hash algorithm",
        description="MD5 and SHA-1 are broken for security purposes.",
        recommendation="Use SHA-256 or a password hash such as bcrypt/argon2.",
        cwe="CWE-327",
    ),
    VulnerabilityRule(
        id="insecure-tls",
        pattern=re.compile(r"\bverify\s*=\s*False\b|rejectUnauthorized\s*:\s*false|InsecureSkipVerify\s*:\s*true"),
        severity=Severity.MEDIUM,
        title="TLS certificate verification disabled",
        description="Disabling certificate checks allows man-in-the-middle attacks.",
        recommendation="Keep verification on and configure the trusted CA bundle instead.",
        cwe="CWE-295",
    ),
    VulnerabilityRule(
        id="insecure-random",
        pattern=re.compile(r"Math\.random\s*\("),
        severity=Severity.LOW,
        title="Math.random() used",
        description="Math.random() is not suitable for tokens, ids or secrets.",
        recommendation="Use crypto.randomUUID() or crypto.getRandomValues().",
        cwe="CWE-338",
        languages=_JS,
    ),
]


def _enclosing_symbol(symbols: List[Symbol], line_no: int) -> Optional[Symbol]:
    inner: Optional[Symbol] = None
    for symbol in symbols:
        if symbol.line_start <= line_no <= symbol.line_end:
            if inner is None or symbol.line_count < inner.line_count:
                inner = symbol
    return inner


def scan_file(parsed: ParsedFile, rules: Optional[List[VulnerabilityRule]] = None) -> List[VulnerabilityFinding]:
    rules = [r for r in (rules or RULES) if r.applies_to(parsed.language)]
    findings: List[VulnerabilityFinding] = []
    seen = set()

    for index, line in enumerate(parsed.content.split("\n")):
        if not line.strip() or _COMMENT_LINE.match(line):
            continue
        line_no = index + 1
        for rule in rules:
            if (line_no, rule.id) in seen or not rule.pattern.search(line):
                continue
            seen.add((line_no, rule.id))
            symbol = _enclosing_symbol(parsed.symbols, line_no)
            findings.append(VulnerabilityFinding(
                type=rule.id,
                severity=rule.severity,
                title=rule.title,
                description=rule.description,
                file_path=parsed.file_path,
                line_start=line_no,
                line_end=line_no,
                code_snippet=line.strip(),
                recommendation=rule.recommendation,
                cwe=rule.cwe,
                symbol_name=symbol.name if symbol else None,
            ))
    return findings


def scan_files(parsed_files: List[ParsedFile]) -> List[VulnerabilityFinding]:
    findings: List[VulnerabilityFinding] = []
    for parsed in parsed_files:
        findings.extend(scan_file(parsed))
    logger.info(f"Found {len(findings)} potential vulnerabilities in {len(parsed_files)} files")
    return findings


def summarize_vulnerabilities(findings: List[VulnerabilityFinding]) -> Dict[str, Any]:
    """Result payload ``{vulnerabilitiesFound, bySeverity, byType, files}``."""
    by_severity = Counter(f.severity for f in findings)
    return {
        "vulnerabilitiesFound": len(findings),
        "bySeverity": {s.value: by_severity.get(s, 0) for s in Severity},
        "byType": dict(Counter(f.type for f in findings)),
        "files": len({f.file_path for f in findings}),
    }
