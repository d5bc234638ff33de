"""
tracking/tracker.py

DomainConnectionTracker — maintains per-domain connection windows.

Design constraints:
  - No raw events stored — only the IP sets and a counter per domain.
  - The window is sliding: `window_start` is refreshed on every connection,
    and the domain's state is reset once WINDOW_SECONDS pass without one.
    A timestamp older than `window_start` counts but never moves it back;
    a non-finite one is replaced by the wall clock.
  - First-party detection is a heuristic substring relation between the IP
    text and the domain text.  It is NOT proof that the IP belongs to the
    domain's owner; treat it as one weak signal.
  - Max domains cap (default 10 000) protects against unbounded growth;
    least-recently-seen domains are evicted when exceeded.

Thread safety: NOT thread-safe on its own. ClassificationPipeline serialises
all calls to observe() / restore().
"""

from __future__ import annotations

import logging
import math
import time
from collections import OrderedDict

from ..addresses import parse_ip
from .models import DomainState, TrackerSnapshot

logger = logging.getLogger(__name__)

_WINDOW_SECONDS_DEFAULT = 300
_UNEXPECTED_MIN_CONNECTIONS_DEFAULT = 10
_MAX_DOMAINS_DEFAULT = 10_000

_PLACEHOLDERS = frozenset({"", "undefined", "null", "none"})


def is_malformed(value: str | None) -> bool:
    """True for empty values and the placeholders browsers hand out."""
    return value is None or value.strip().lower() in _PLACEHOLDERS


def registrable_label(domain: str) -> str:
    """
    Approximate registrable name of *domain*: the label left of the TLD.

    'www.example.co' → 'example'.  Multi-part public suffixes ('co.uk') are
    not special-cased; the heuristic only needs a distinctive label.
    """
    labels = [p for p in domain.lower().strip(".").split(".") if p]
    if len(labels) >= 2:
        return labels[-2]
    return labels[0] if labels else ""


def is_first_party(domain: str, ip: str) -> bool:
    """
    Heuristic: does *ip* textually relate to *domain*?

    True when:
      - the domain is itself an IP literal equal to *ip*, or
      - the domain embeds the address (dotted or dashed, as in
        '10-0-0-1.sslip.io'), or
      - the domain's registrable label occurs inside the IP text.
    """
    d = domain.lower().strip(".")
    addr = ip.lower()

    literal = parse_ip(d)
    if literal is not None:
        return literal == parse_ip(addr)

    if addr in d or addr.replace(".", "-") in d:
        return True

    label = registrable_label(d)
    return bool(label) and label in addr


class DomainConnectionTracker:
    """
    Tracks expected / suspicious IP sets and a connection counter per domain.

    Args:
        window_seconds:          Silence after which a domain's window resets.
        unexpected_min_connections:
                                 Connections that must be seen in the window
                                 before a non-first-party IP is suspicious.
        max_domains:             LRU cap on tracked domains.
    """

    def __init__(
        self,
        window_seconds: int = _WINDOW_SECONDS_DEFAULT,
        unexpected_min_connections: int = _UNEXPECTED_MIN_CONNECTIONS_DEFAULT,
        max_domains: int = _MAX_DOMAINS_DEFAULT,
    ) -> None:
        self.domains: OrderedDict[str, DomainState] = OrderedDict()
        self._window_seconds = window_seconds
        self._min_connections = unexpected_min_connections
        self._max_domains = max_domains
        self.stats: dict[str, int] = {
            "observations": 0,
            "skipped": 0,
            "window_resets": 0,
            "domains_evicted": 0,
        }
        logger.debug(
            "DomainConnectionTracker initialised — window=%ds min_conns=%d max_domains=%d",
            window_seconds,
            unexpected_min_connections,
            max_domains,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def observe(self, domain: str, ip: str, now: float | None = None) -> TrackerSnapshot:
        """
        Record one connection to *ip* made on behalf of *domain*.

        Never raises.  Malformed input returns a snapshot with skip=True
        and leaves all state untouched.
        """
        if is_malformed(domain) or is_malformed(ip):
            self.stats["skipped"] += 1
            logger.debug("Skipping malformed observation domain=%r ip=%r", domain, ip)
            return TrackerSnapshot.skipped(domain, ip)

        if now is None or not math.isfinite(now):
            now = time.time()
        key = domain.lower()

        state = self.domains.get(key)
        if state is None:
            state = DomainState(window_start=now)
            self.domains[key] = state
            if len(self.domains) > self._max_domains:
                self._evict_oldest()
        else:
            self.domains.move_to_end(key)
            if now - state.window_start > self._window_seconds:
                state.reset(now)
                self.stats["window_resets"] += 1
                logger.debug("Window reset for domain %r", key)

        # out-of-order timestamps never move the window backwards
        state.window_start = max(state.window_start, now)
        state.connection_count += 1
        self.stats["observations"] += 1

        first_party = is_first_party(key, ip)
        if first_party:
            state.expected_ips.add(ip)
        elif state.connection_count > self._min_connections and ip not in state.expected_ips:
            if ip not in state.suspicious_ips:
                logger.debug(
                    "Suspicious IP %r for domain %r (conns=%d)",
                    ip, key, state.connection_count,
                )
            state.suspicious_ips.add(ip)

        return TrackerSnapshot(
            domain=key,
            ip=ip,
            is_first_party=first_party,
            connection_count=state.connection_count,
            suspicious_count=len(state.suspicious_ips),
            is_known_expected=ip in state.expected_ips,
        )

    def get_state(self, domain: str) -> DomainState | None:
        """Return a copy of *domain*'s state, or None if it is not tracked."""
        state = self.domains.get(domain.lower())
        if state is None:
            return None
        return DomainState.from_dict(state.to_dict())

    def export_state(self) -> dict[str, dict]:
        """Serializable copy of every tracked domain (for persistence)."""
        return {domain: state.to_dict() for domain, state in self.domains.items()}

    def restore(self, data: dict[str, dict]) -> int:
        """
        Load state produced by export_state().

        Bad entries are skipped. Returns the number of domains restored.
        """
        restored = 0
        for domain, raw in data.items():
            try:
                self.domains[domain.lower()] = DomainState.from_dict(raw)
                restored += 1
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable tracker state for %r: %s", domain, exc)
        if len(self.domains) > self._max_domains:
            self._evict_oldest()
        logger.info("Restored tracker state for %d domain(s)", restored)
        return restored

    def clear(self) -> None:
        self.domains.clear()

    @property
    def domain_count(self) -> int:
        return len(self.domains)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _evict_oldest(self) -> None:
        """Evict least-recently-seen domain(s) to stay within max_domains."""
        n_to_evict = len(self.domains) - self._max_domains
        for _ in range(max(n_to_evict, 0)):
            self.domains.popitem(last=False)
        if n_to_evict > 0:
            self.stats["domains_evicted"] += n_to_evict
            logger.warning("Evicted %d least-recently-seen domain(s) to stay within cap", n_to_evict)
