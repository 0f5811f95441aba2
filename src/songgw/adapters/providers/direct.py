"""The vendor's own single-endpoint API."""

from typing import Any, Dict, List, Optional

from songgw.adapters.providers.base import (
    HttpGenerationProvider,
    clean_payload,
    extract_job_id,
    extract_record_id,
    upstream_message,
)
from songgw.core.exceptions import ErrorType, ProviderError
from songgw.core.interfaces.generation_provider import SubmitResult
from songgw.core.settings import logger


def build_prompt(prompt: str, style: Optional[str] = None) -> str:
    if style:
        return f"{prompt} in {style} style"
    return prompt


class DirectProvider(HttpGenerationProvider):

    async def submit(
        self,
        prompt: str,
        style: Optional[str] = None,
        tags: Optional[List[str]] = None,
        instrumental: bool = False,
        callback_url: Optional[str] = None,
        title: Optional[str] = None,
    ) -> SubmitResult:
        payload = clean_payload(
            {
                "prompt": build_prompt(prompt, style),
                "model": self.config.model,
                "instrumental": bool(instrumental),
                "tags": tags or None,
                "title": title,
                "callback_url": self.resolve_callback_url(callback_url),
            }
        )
        url = self.config.url_for(self.config.generate_path)
        logger.info(f"[provider:{self.name}] submit url={url} model={self.config.model}")

        # a re-sent POST could start a second billed job, so submit is never retried
        response = await self._send("POST", url, retry=False, json=payload)
        body = response.get("body")
        if response.get("status", 0) >= 400:
            error = self._error_from_response(response, "submit")
            logger.warning(
                f"[provider:{self.name}] submit rejected type={error.error_type} status={error.upstream_status}"
            )
            raise error

        job_id = extract_job_id(body)
        if not job_id:
            raise ProviderError(
                ErrorType.NO_JOB_ID,
                upstream_message(body, "Provider did not return a job id"),
                provider_name=self.name,
                upstream_status=response.get("status"),
                upstream_body=body,
            )
        return SubmitResult(job_id=job_id, record_id=extract_record_id(body), raw=body)

    async def resolve_status(
        self, job_id: str, record_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        url = self.config.url_for(f"{self.config.status_path.rstrip('/')}/{job_id}")
        response = await self._send("GET", url)
        status = response.get("status", 0)
        body = response.get("body")

        if status in (401, 403):
            raise ProviderError(
                ErrorType.AUTH_ERROR,
                upstream_message(body, "Authentication with the provider failed"),
                provider_name=self.name,
                upstream_status=status,
                upstream_body=body,
            )
        if status == 404:
            return None
        if status >= 400:
            raise self._error_from_response(response, "status lookup")
        # a 2xx with an empty body means the job is not visible yet
        return body or None
