"""Reseller ("aggregator") API client.

Aggregators wrap the vendor behind their own envelope ``{code, msg, data}``
and spread job state over several endpoints, so a status lookup walks a
fixed chain of endpoints until one of them knows the job.
"""

from typing import Any, Dict, List, Optional, Tuple

from songgw.adapters.providers.base import (
    HttpGenerationProvider,
    clean_payload,
    extract_job_id,
    extract_record_id,
    is_envelope_failure,
    upstream_message,
)
from songgw.core.exceptions import ErrorType, ProviderError
from songgw.core.interfaces.generation_provider import SubmitResult
from songgw.core.settings import logger


def is_not_found(response: Dict[str, Any]) -> bool:
    """A lookup step that does not know the job (yet)."""
    status = response.get("status")
    body = response.get("body")
    if status == 404:
        return True
    if body is None or body == "" or body == {}:
        return True
    if isinstance(body, dict):
        if body.get("code") == 404:
            return True
        if "data" in body and body["data"] is None:
            return True
    return False


class AggregatorProvider(HttpGenerationProvider):

    async def submit(
        self,
        prompt: str,
        style: Optional[str] = None,
        tags: Optional[List[str]] = None,
        instrumental: bool = False,
        callback_url: Optional[str] = None,
        title: Optional[str] = None,
    ) -> SubmitResult:
        cb = self.resolve_callback_url(callback_url)
        payload = clean_payload(
            {
                "prompt": prompt,
                "style": style,
                "tags": ", ".join(tags) if tags else None,
                "title": title,
                "instrumental": bool(instrumental),
                "model": self.config.model,
                "customMode": self.config.custom_mode,
                # both casings are in use across aggregator deployments
                "callBackUrl": cb,
                "callbackUrl": cb,
            }
        )
        url = self.config.url_for(self.config.generate_path)
        logger.info(f"[provider:{self.name}] submit url={url} fields={sorted(payload)}")

        # a retried POST could start the same song twice
        response = await self._send("POST", url, retry=False, json=payload)
        body = response.get("body")
        if response.get("status", 0) >= 400 or is_envelope_failure(body):
            error = self._error_from_response(response, "submit")
            logger.warning(
                f"[provider:{self.name}] submit rejected type={error.error_type} status={error.upstream_status} message={error.message}"
            )
            raise error

        job_id = extract_job_id(body)
        if not job_id:
            logger.error(f"[provider:{self.name}] submit answered without a job id body={str(body)[:800]}")
            raise ProviderError(
                ErrorType.NO_JOB_ID,
                upstream_message(body, "Provider did not return a job id"),
                provider_name=self.name,
                upstream_status=response.get("status"),
                upstream_body=body,
            )
        return SubmitResult(job_id=job_id, record_id=extract_record_id(body), raw=body)

    def _lookup_steps(self, job_id: str, record_id: Optional[str]) -> List[Tuple[str, str, Optional[str]]]:
        return [
            (self.config.status_path, "taskId", job_id),
            (self.config.record_info_path, "id", record_id or job_id),
            (self.config.legacy_status_path, "taskId", job_id),
        ]

    async def resolve_status(
        self, job_id: str, record_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        last_error: Optional[ProviderError] = None

        for path, key, value in self._lookup_steps(job_id, record_id):
            if not value:
                continue
            url = self.config.url_for(path)
            try:
                response = await self._send("GET", url, params={key: value})
            except ProviderError as e:
                logger.warning(
                    f"[provider:{self.name}] lookup {path}?{key}={value} failed type={e.error_type} status={e.upstream_status}"
                )
                last_error = e
                continue

            status = response.get("status", 0)
            body = response.get("body")
            envelope_code = body.get("code") if isinstance(body, dict) else None
            if status in (401, 403) or envelope_code in (401, 403):
                raise ProviderError(
                    ErrorType.AUTH_ERROR,
                    upstream_message(body, "Authentication with the provider failed"),
                    provider_name=self.name,
                    upstream_status=status if status >= 400 else envelope_code,
                    upstream_body=body,
                )
            if is_not_found(response):
                logger.debug(f"[provider:{self.name}] lookup {path}?{key}={value} not found")
                continue
            if status >= 400 or is_envelope_failure(body):
                last_error = self._error_from_response(response, f"lookup {path}")
                logger.warning(
                    f"[provider:{self.name}] lookup {path}?{key}={value} rejected type={last_error.error_type}"
                )
                continue

            logger.info(f"[provider:{self.name}] status resolved via {path}?{key}={value}")
            return body

        if last_error is not None:
            raise last_error
        logger.info(f"[provider:{self.name}] no status found for job_id={job_id} record_id={record_id}")
        return None
