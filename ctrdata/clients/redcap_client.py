"""REDCap API client - token authentication with record-id blocking."""

import logging
import re
from typing import Generator, Iterable, Optional

from ctrdata.auth.api_key import TokenAuth
from ctrdata.clients.base import BaseAPIClient
from ctrdata.config import RedcapConfig
from ctrdata.transform.patterns import PRIMARY_TIMESTAMP_PATTERN

logger = logging.getLogger(__name__)


class RedcapApiError(Exception):
    """Raised when REDCap answers with an ``{"error": ...}`` payload."""

    def __init__(self, content: str, message: str):
        self.content = content
        self.message = message
        super().__init__(f"REDCap API error ({content}): {message}")


def _as_flag(value: bool) -> str:
    return "true" if value else "false"


def _join(values: Optional[Iterable]) -> Optional[str]:
    if values is None:
        return None
    if isinstance(values, str):
        return values
    return ",".join(str(v) for v in values)


class RedcapClient(BaseAPIClient):
    """Client for a single REDCap project API.

    Features:
    - Project token sent in the form body
    - Record exports split into blocks of record ids
    - Rate limiting
    - Automatic retries with exponential backoff
    """

    def __init__(self, config: RedcapConfig):
        """Initialize REDCap client.

        Args:
            config: Connection settings (URL, token, limits)
        """
        super().__init__(
            base_url=config.api_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
            backoff_factor=config.backoff_factor,
            rate_limit_requests=config.rate_limit_requests,
            rate_limit_period=config.rate_limit_period,
        )
        self.config = config
        self.token_auth = TokenAuth(api_token=config.api_token)

    def get_auth_form(self) -> dict:
        """Get token form field."""
        return self.token_auth.get_auth_form()

    def _call(self, content: str, **fields) -> list[dict]:
        """POST one REDCap API call and return the parsed JSON payload."""
        data = {"content": content, "format": "json"}
        data.update({k: v for k, v in fields.items() if v is not None})

        payload = self.post(data)

        if isinstance(payload, dict) and "error" in payload:
            logger.error(
                "REDCap returned an error",
                extra={"content": content, "error": payload["error"]}
            )
            raise RedcapApiError(content, payload["error"])

        return payload

    def export_records(
        self,
        fields: Optional[Iterable[str]] = None,
        records: Optional[Iterable] = None,
        raw_or_label: str = "raw",
        raw_or_label_headers: str = "raw",
        export_checkbox_label: bool = False,
        export_survey_fields: bool = True,
        filter_logic: Optional[str] = None,
    ) -> list[dict]:
        """Export records in flat format.

        Args:
            fields: Field names to export (all when None)
            records: Record ids to export (all when None)
            raw_or_label: "raw", "label" or "both"
            raw_or_label_headers: "raw", "label" or "both"
            export_checkbox_label: Export checkbox dummies as labels
            export_survey_fields: Include survey identifier and timestamp fields
            filter_logic: REDCap filter expression

        Returns:
            List of flat records
        """
        records_data = self._call(
            "record",
            type="flat",
            fields=_join(fields),
            records=_join(records),
            rawOrLabel=raw_or_label,
            rawOrLabelHeaders=raw_or_label_headers,
            exportCheckboxLabel=_as_flag(export_checkbox_label),
            exportSurveyFields=_as_flag(export_survey_fields),
            filterLogic=filter_logic,
        )

        logger.info(
            f"Exported {len(records_data)} records",
            extra={
                "content": "record",
                "record_count": len(records_data),
                "field_count": len(records_data[0]) if records_data else 0,
            }
        )

        return records_data

    def paginate(
        self,
        data: dict,
        record_ids: list,
        block_size: int,
    ) -> Generator[list[dict], None, None]:
        """Export records block by block.

        Args:
            data: Keyword arguments forwarded to :meth:`export_records`
            record_ids: Record ids to export
            block_size: Number of record ids per request

        Yields:
            Records returned for each block
        """
        total = len(record_ids)
        for start in range(0, total, block_size):
            block = record_ids[start:start + block_size]

            logger.info(
                f"Extracting records between {block[0]} and {block[-1]}",
                extra={"block_start": start, "block_size": len(block)}
            )

            yield self.export_records(records=block, **data)

        logger.debug(f"Block export complete for {total} record ids")

    def export_records_in_blocks(
        self,
        record_ids: list,
        block_size: Optional[int] = None,
        **kwargs,
    ) -> list[dict]:
        """Export many records, one request per block of record ids.

        Args:
            record_ids: Record ids to export
            block_size: Ids per request (defaults to config.block_size)
            **kwargs: Forwarded to :meth:`export_records`

        Returns:
            All exported records, block order preserved
        """
        block_size = block_size or self.config.block_size

        records = []
        for block_records in self.paginate(kwargs, list(record_ids), block_size):
            records.extend(block_records)

        return records

    def export_metadata(self, fields: Optional[Iterable[str]] = None) -> list[dict]:
        """Export the project data dictionary.

        Returns:
            One dict per field (field_name, field_type, select_choices_or_calculations, ...)
        """
        metadata = self._call("metadata", fields=_join(fields))

        logger.info(
            f"Exported metadata for {len(metadata)} fields",
            extra={"content": "metadata", "field_count": len(metadata)}
        )

        return metadata

    def export_field_names(self, pattern: str) -> list[str]:
        """Return data-dictionary field names matching a regex pattern."""
        regex = re.compile(pattern)
        return [
            item["field_name"]
            for item in self.export_metadata()
            if regex.search(item.get("field_name", ""))
        ]

    def export_logs(
        self,
        log_type: str = "",
        begin_time: str = "",
        end_time: str = "",
    ) -> list[dict]:
        """Export project logging events.

        Args:
            log_type: "record", "manage", "file", ... (empty for all)
            begin_time: Lower bound, "YYYY-MM-DD HH:MM:SS" (empty for none)
            end_time: Upper bound, "YYYY-MM-DD HH:MM:SS" (empty for none)

        Returns:
            Log entries
        """
        logs = self._call(
            "log",
            logtype=log_type,
            beginTime=begin_time,
            endTime=end_time,
        )

        logger.info(
            f"Exported {len(logs)} log entries",
            extra={"content": "log", "log_type": log_type or "all"}
        )

        return logs

    def timestamp_fields(self, record_id=1) -> list[str]:
        """Find survey timestamp fields by inspecting one sample record.

        Args:
            record_id: An existing record id

        Returns:
            Field names ending with "timestamp"
        """
        sample = self.export_records(records=[record_id], export_survey_fields=True)
        if not sample:
            logger.warning(
                f"Sample record {record_id} not found, no timestamp fields detected",
                extra={"record_id": record_id}
            )
            return []

        return [name for name in sample[0] if PRIMARY_TIMESTAMP_PATTERN.search(name)]
