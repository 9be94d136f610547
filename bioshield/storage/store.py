"""
SQLite-based store for vulnerabilities, bio impact scores and recommendations.

Identifier uniqueness is enforced by the schema, so concurrent ingestion
runs racing on the same CVE resolve at the database, not in process.
"""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any
from contextlib import contextmanager
import threading

import structlog

from ..collector.models import Vulnerability
from ..errors import ScoreExistsError, VulnerabilityNotFoundError
from ..models import ActionRecommendation, BioImpactScore

logger = structlog.get_logger(__name__)


def _to_text(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class VulnerabilityStore:
    """
    SQLite-based persistent store for the triage pipeline.

    Provides thread-safe operations through thread-local connections.
    """

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS vulnerabilities (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        cve_id TEXT NOT NULL UNIQUE,
        description TEXT,
        source_name TEXT,
        cvss_score REAL,
        cvss_vector TEXT,
        published_date TEXT,
        vendor_name TEXT,
        affected_products TEXT,
        known_exploited INTEGER NOT NULL DEFAULT 0,
        references_json TEXT,
        raw_data TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS bio_impact_scores (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        cve_id TEXT NOT NULL UNIQUE REFERENCES vulnerabilities(cve_id) ON DELETE CASCADE,
        human_safety_score INTEGER NOT NULL,
        supply_chain_score INTEGER NOT NULL,
        exploitability_score INTEGER NOT NULL,
        patch_availability_score INTEGER NOT NULL,
        composite_score REAL NOT NULL,
        priority_level TEXT NOT NULL,
        confidence REAL,
        affected_sectors TEXT,
        ai_analysis TEXT,
        model_version TEXT,
        human_reviewed INTEGER NOT NULL DEFAULT 0,
        reviewer_notes TEXT,
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS action_recommendations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        cve_id TEXT NOT NULL REFERENCES vulnerabilities(cve_id) ON DELETE CASCADE,
        recommendation_type TEXT NOT NULL,
        action_text TEXT NOT NULL,
        safe_to_implement INTEGER NOT NULL,
        requires_tier2 INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_vuln_known_exploited ON vulnerabilities(known_exploited);
    CREATE INDEX IF NOT EXISTS idx_vuln_created ON vulnerabilities(created_at);
    CREATE INDEX IF NOT EXISTS idx_score_priority ON bio_impact_scores(priority_level);
    CREATE INDEX IF NOT EXISTS idx_rec_cve ON action_recommendations(cve_id);
    """

    def __init__(self, db_path: str):
        """
        Initialize the store.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self._local = threading.local()

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

        logger.info("vulnerability_store_initialized", db_path=str(self.db_path))

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, 'connection') or self._local.connection is None:
            self._local.connection = sqlite3.connect(str(self.db_path), timeout=30.0)
            self._local.connection.row_factory = sqlite3.Row
            self._local.connection.execute("PRAGMA foreign_keys = ON")
            self._local.connection.execute("PRAGMA journal_mode = WAL")
        return self._local.connection

    @contextmanager
    def _transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _init_schema(self):
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.executescript(self.SCHEMA)

    # Vulnerabilities

    @staticmethod
    def _vulnerability_params(vuln: Vulnerability) -> Dict[str, Any]:
        return {
            "cve_id": vuln.cve_id,
            "description": vuln.description,
            "source_name": vuln.source_name,
            "cvss_score": vuln.cvss_score,
            "cvss_vector": vuln.cvss_vector,
            "published_date": _to_text(vuln.published_date),
            "vendor_name": vuln.vendor_name,
            "affected_products": vuln.affected_products,
            "known_exploited": int(vuln.known_exploited),
            "references_json": json.dumps(vuln.references),
            "raw_data": vuln.raw_data,
            "created_at": _to_text(vuln.created_at),
            "updated_at": _to_text(vuln.updated_at),
        }

    @staticmethod
    def _row_to_vulnerability(row: sqlite3.Row) -> Vulnerability:
        return Vulnerability(
            id=row["id"],
            cve_id=row["cve_id"],
            description=row["description"],
            source_name=row["source_name"],
            cvss_score=row["cvss_score"],
            cvss_vector=row["cvss_vector"],
            published_date=_from_text(row["published_date"]),
            vendor_name=row["vendor_name"],
            affected_products=row["affected_products"],
            known_exploited=bool(row["known_exploited"]),
            references=json.loads(row["references_json"] or "[]"),
            raw_data=row["raw_data"],
            created_at=_from_text(row["created_at"]),
            updated_at=_from_text(row["updated_at"]),
        )

    def exists(self, cve_id: str) -> bool:
        """Check whether a vulnerability with this identifier is stored."""
        conn = self._get_connection()
        cursor = conn.execute("SELECT 1 FROM vulnerabilities WHERE cve_id = ?", (cve_id,))
        return cursor.fetchone() is not None

    def get_vulnerability(self, cve_id: str) -> Optional[Vulnerability]:
        """
        Get a stored vulnerability.

        Args:
            cve_id: CVE identifier.

        Returns:
            Vulnerability or None if not stored.
        """
        conn = self._get_connection()
        row = conn.execute("SELECT * FROM vulnerabilities WHERE cve_id = ?", (cve_id,)).fetchone()
        return self._row_to_vulnerability(row) if row else None

    def upsert_vulnerability(self, vuln: Vulnerability) -> bool:
        """
        Insert a vulnerability or refresh the feed fields of an existing one.

        ``known_exploited`` only ever moves from false to true, and the
        original source and creation time are kept.

        Args:
            vuln: Vulnerability to store.

        Returns:
            True if a new row was created.
        """
        params = self._vulnerability_params(vuln)
        with self._transaction() as conn:
            existed = conn.execute(
                "SELECT 1 FROM vulnerabilities WHERE cve_id = ?", (vuln.cve_id,)
            ).fetchone() is not None
            conn.execute(
                """
                INSERT INTO vulnerabilities (
                    cve_id, description, source_name, cvss_score, cvss_vector,
                    published_date, vendor_name, affected_products, known_exploited,
                    references_json, raw_data, created_at, updated_at
                ) VALUES (
                    :cve_id, :description, :source_name, :cvss_score, :cvss_vector,
                    :published_date, :vendor_name, :affected_products, :known_exploited,
                    :references_json, :raw_data, :created_at, :updated_at
                )
                ON CONFLICT(cve_id) DO UPDATE SET
                    description = COALESCE(excluded.description, description),
                    cvss_score = COALESCE(excluded.cvss_score, cvss_score),
                    cvss_vector = COALESCE(excluded.cvss_vector, cvss_vector),
                    published_date = COALESCE(excluded.published_date, published_date),
                    vendor_name = COALESCE(excluded.vendor_name, vendor_name),
                    affected_products = COALESCE(excluded.affected_products, affected_products),
                    known_exploited = MAX(known_exploited, excluded.known_exploited),
                    references_json = excluded.references_json,
                    raw_data = COALESCE(excluded.raw_data, raw_data),
                    updated_at = excluded.updated_at
                """,
                params
            )
        logger.debug("vulnerability_upserted", cve_id=vuln.cve_id, new=not existed)
        return not existed

    def insert_if_absent(self, vuln: Vulnerability) -> bool:
        """
        Insert a vulnerability unless the identifier is already stored.

        Returns:
            True if a new row was created.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO vulnerabilities (
                    cve_id, description, source_name, cvss_score, cvss_vector,
                    published_date, vendor_name, affected_products, known_exploited,
                    references_json, raw_data, created_at, updated_at
                ) VALUES (
                    :cve_id, :description, :source_name, :cvss_score, :cvss_vector,
                    :published_date, :vendor_name, :affected_products, :known_exploited,
                    :references_json, :raw_data, :created_at, :updated_at
                )
                ON CONFLICT(cve_id) DO NOTHING
                """,
                self._vulnerability_params(vuln)
            )
        return cursor.rowcount == 1

    def mark_known_exploited(self, cve_id: str) -> bool:
        """
        Flag a stored vulnerability as known exploited.

        Returns:
            True if a stored row matched.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE vulnerabilities
                SET known_exploited = 1, updated_at = ?
                WHERE cve_id = ?
                """,
                (_to_text(datetime.now(timezone.utc)), cve_id)
            )
        return cursor.rowcount > 0

    def count_vulnerabilities(self) -> int:
        conn = self._get_connection()
        return conn.execute("SELECT COUNT(*) FROM vulnerabilities").fetchone()[0]

    def count_known_exploited(self) -> int:
        conn = self._get_connection()
        return conn.execute(
            "SELECT COUNT(*) FROM vulnerabilities WHERE known_exploited = 1"
        ).fetchone()[0]

    def list_unanalyzed(self, limit: int = 10) -> List[Vulnerability]:
        """
        Get vulnerabilities without a bio impact score, newest first.

        Args:
            limit: Maximum number of vulnerabilities to return.

        Returns:
            List of Vulnerability objects.
        """
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT v.* FROM vulnerabilities v
            LEFT JOIN bio_impact_scores s ON s.cve_id = v.cve_id
            WHERE s.id IS NULL
            ORDER BY v.created_at DESC, v.id DESC
            LIMIT ?
            """,
            (limit,)
        )
        return [self._row_to_vulnerability(row) for row in cursor.fetchall()]

    # Bio impact scores

    @staticmethod
    def _row_to_score(row: sqlite3.Row) -> BioImpactScore:
        return BioImpactScore(
            id=row["id"],
            cve_id=row["cve_id"],
            human_safety_score=row["human_safety_score"],
            supply_chain_score=row["supply_chain_score"],
            exploitability_score=row["exploitability_score"],
            patch_availability_score=row["patch_availability_score"],
            composite_score=row["composite_score"],
            priority_level=row["priority_level"],
            confidence=row["confidence"],
            affected_sectors=json.loads(row["affected_sectors"] or "[]"),
            ai_analysis=row["ai_analysis"],
            model_version=row["model_version"],
            human_reviewed=bool(row["human_reviewed"]),
            reviewer_notes=row["reviewer_notes"],
            created_at=_from_text(row["created_at"]),
        )

    def get_score(self, cve_id: str) -> Optional[BioImpactScore]:
        """Get the bio impact score for a vulnerability, if any."""
        conn = self._get_connection()
        row = conn.execute("SELECT * FROM bio_impact_scores WHERE cve_id = ?", (cve_id,)).fetchone()
        return self._row_to_score(row) if row else None

    def save_score(self, score: BioImpactScore, replace: bool = False) -> BioImpactScore:
        """
        Persist a bio impact score.

        Args:
            score: Score to store.
            replace: Overwrite an existing score for the same vulnerability.
                Its stored recommendations are discarded with it.

        Returns:
            The stored score with its row id.

        Raises:
            VulnerabilityNotFoundError: If the vulnerability is not stored.
            ScoreExistsError: If a score exists and ``replace`` is False.
        """
        if not self.exists(score.cve_id):
            raise VulnerabilityNotFoundError(score.cve_id)

        params = {
            "cve_id": score.cve_id,
            "human_safety_score": score.human_safety_score,
            "supply_chain_score": score.supply_chain_score,
            "exploitability_score": score.exploitability_score,
            "patch_availability_score": score.patch_availability_score,
            "composite_score": score.composite_score,
            "priority_level": score.priority_level.value,
            "confidence": score.confidence,
            "affected_sectors": json.dumps(score.affected_sectors),
            "ai_analysis": score.ai_analysis,
            "model_version": score.model_version,
            "human_reviewed": int(score.human_reviewed),
            "reviewer_notes": score.reviewer_notes,
            "created_at": _to_text(score.created_at),
        }

        try:
            with self._transaction() as conn:
                if replace:
                    # Recommendations follow the priority of the score they were built from
                    conn.execute("DELETE FROM action_recommendations WHERE cve_id = ?", (score.cve_id,))
                    conn.execute("DELETE FROM bio_impact_scores WHERE cve_id = ?", (score.cve_id,))
                conn.execute(
                    """
                    INSERT INTO bio_impact_scores (
                        cve_id, human_safety_score, supply_chain_score, exploitability_score,
                        patch_availability_score, composite_score, priority_level, confidence,
                        affected_sectors, ai_analysis, model_version, human_reviewed,
                        reviewer_notes, created_at
                    ) VALUES (
                        :cve_id, :human_safety_score, :supply_chain_score, :exploitability_score,
                        :patch_availability_score, :composite_score, :priority_level, :confidence,
                        :affected_sectors, :ai_analysis, :model_version, :human_reviewed,
                        :reviewer_notes, :created_at
                    )
                    """,
                    params
                )
        except sqlite3.IntegrityError as e:
            raise ScoreExistsError(score.cve_id) from e

        logger.info("bio_impact_score_saved", cve_id=score.cve_id, replaced=replace)
        return self.get_score(score.cve_id)

    # Recommendations

    @staticmethod
    def _row_to_recommendation(row: sqlite3.Row) -> ActionRecommendation:
        return ActionRecommendation(
            id=row["id"],
            cve_id=row["cve_id"],
            recommendation_type=row["recommendation_type"],
            action_text=row["action_text"],
            safe_to_implement=bool(row["safe_to_implement"]),
            requires_tier2=bool(row["requires_tier2"]),
            created_at=_from_text(row["created_at"]),
        )

    def get_recommendations(self, cve_id: str) -> List[ActionRecommendation]:
        """Get stored recommendations for a vulnerability, in insertion order."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT * FROM action_recommendations WHERE cve_id = ? ORDER BY id",
            (cve_id,)
        )
        return [self._row_to_recommendation(row) for row in cursor.fetchall()]

    def save_recommendations(self, recommendations: List[ActionRecommendation]) -> List[ActionRecommendation]:
        """
        Persist a list of recommendations in one transaction.

        Returns:
            The stored recommendations with their row ids.
        """
        if not recommendations:
            return []

        with self._transaction() as conn:
            for rec in recommendations:
                conn.execute(
                    """
                    INSERT INTO action_recommendations (
                        cve_id, recommendation_type, action_text,
                        safe_to_implement, requires_tier2, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        rec.cve_id,
                        rec.recommendation_type.value,
                        rec.action_text,
                        int(rec.safe_to_implement),
                        int(rec.requires_tier2),
                        _to_text(rec.created_at),
                    )
                )
        return self.get_recommendations(recommendations[0].cve_id)

    # Statistics

    def get_stats(self) -> Dict[str, Any]:
        """
        Get dashboard-style statistics.

        Returns:
            Dict with totals, priority breakdown, CVSS distribution and
            the average composite score.
        """
        conn = self._get_connection()

        total = self.count_vulnerabilities()
        analyzed = conn.execute("SELECT COUNT(*) FROM bio_impact_scores").fetchone()[0]

        priority_breakdown = {"CRITICAL": 0, "HIGH": 0, "MEDIUM": 0, "LOW": 0}
        for row in conn.execute(
            "SELECT priority_level, COUNT(*) AS n FROM bio_impact_scores GROUP BY priority_level"
        ):
            priority_breakdown[row["priority_level"]] = row["n"]

        cvss_row = conn.execute(
            """
            SELECT
                SUM(CASE WHEN cvss_score >= 9.0 THEN 1 ELSE 0 END) AS critical,
                SUM(CASE WHEN cvss_score >= 7.0 AND cvss_score < 9.0 THEN 1 ELSE 0 END) AS high,
                SUM(CASE WHEN cvss_score >= 4.0 AND cvss_score < 7.0 THEN 1 ELSE 0 END) AS medium,
                SUM(CASE WHEN cvss_score < 4.0 THEN 1 ELSE 0 END) AS low,
                SUM(CASE WHEN cvss_score IS NULL THEN 1 ELSE 0 END) AS unknown
            FROM vulnerabilities
            """
        ).fetchone()

        average = conn.execute("SELECT AVG(composite_score) FROM bio_impact_scores").fetchone()[0]

        return {
            "total_vulnerabilities": total,
            "analyzed_vulnerabilities": analyzed,
            "unanalyzed_vulnerabilities": total - analyzed,
            "known_exploited": self.count_known_exploited(),
            "priority_breakdown": priority_breakdown,
            "cvss_distribution": {k: cvss_row[k] or 0 for k in ("critical", "high", "medium", "low", "unknown")},
            "average_composite_score": round(average, 2) if average is not None else 0.0,
        }

    def close(self):
        """Close the database connection."""
        if hasattr(self._local, 'connection') and self._local.connection:
            self._local.connection.close()
            self._local.connection = None
