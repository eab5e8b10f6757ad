"""HTTP-01 challenge handler (RFC 8555 §8.3).

Publishes the key authorization below ``/.well-known/acme-challenge/``
of the target site through the hosting platform's deployment endpoint,
then fetches it back over plain HTTP the way the CA will.
"""

from __future__ import annotations

import logging
import secrets
import ssl
import urllib.error
import urllib.request
from typing import TYPE_CHECKING

from certbind.challenge.base import ChallengeHandler
from certbind.core.types import ChallengeType
from certbind.errors import ChallengeError
from certbind.models.acme import ChallengeResult
from certbind.models.site import VirtualApplication

if TYPE_CHECKING:
    from certbind.clients.base import AcmeClient, HostingClient
    from certbind.config.settings import Http01Settings
    from certbind.models.site import Site

log = logging.getLogger(__name__)

WEB_CONFIG = """<?xml version="1.0" encoding="utf-8"?>
<configuration>
  <system.webServer>
    <handlers>
      <clear />
      <add name="StaticFile" path="*" verb="*" modules="StaticFileModule" resourceType="Either" requireAccess="Read" />
    </handlers>
    <staticContent>
      <remove fileExtension="." />
      <mimeMap fileExtension="." mimeType="text/plain" />
    </staticContent>
    <rewrite>
      <rules>
        <clear />
      </rules>
    </rewrite>
  </system.webServer>
  <system.web>
    <authorization>
      <allow users="*"/>
    </authorization>
  </system.web>
</configuration>
"""


def _insecure_opener() -> urllib.request.OpenerDirector:
    # HTTP-01 starts on plain HTTP; redirects to HTTPS must not fail on
    # the certificate we are about to replace.
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return urllib.request.build_opener(urllib.request.HTTPSHandler(context=context))


class Http01Handler(ChallengeHandler):
    """HTTP-01 handler for sites that can serve static files.

    Parameters
    ----------
    acme:
        ACME client.
    hosting:
        Hosting client used to configure the site and publish files.
    settings:
        The ``challenges.http01`` configuration section.

    """

    challenge_type = ChallengeType.HTTP_01

    def __init__(
        self,
        acme: AcmeClient,
        hosting: HostingClient,
        settings: Http01Settings,
    ) -> None:
        super().__init__(acme)
        self._hosting = hosting
        self._settings = settings

    def precondition(self, site: Site) -> None:
        """Map the well-known virtual path to its physical directory.

        Creates the virtual application when absent and corrects the
        physical path when it points elsewhere, then writes the site
        configuration back.
        """
        config = self._hosting.get_site_config(site)
        virtual_path = self._settings.virtual_path
        physical_path = self._settings.physical_path

        existing = next(
            (va for va in config.virtual_applications if va.virtual_path == virtual_path),
            None,
        )
        if existing is None:
            config.virtual_applications.append(
                VirtualApplication(
                    virtual_path=virtual_path,
                    physical_path=physical_path,
                    preload_enabled=False,
                )
            )
            log.info("Adding virtual application %s to %s", virtual_path, site.display_name)
        elif existing.physical_path != physical_path:
            log.info(
                "Correcting physical path of %s on %s: %s -> %s",
                virtual_path,
                site.display_name,
                existing.physical_path,
                physical_path,
            )
            existing.physical_path = physical_path

        self._hosting.update_site_config(site, config)

    def authorize(self, site: Site, authz_url: str) -> ChallengeResult:
        """Publish the HTTP-01 proof for one authorization on *site*."""
        authorization, challenge, details = self._resolve(authz_url)

        credentials = self._hosting.get_publishing_credentials(site)
        self._hosting.publish_file(
            site,
            credentials,
            self._settings.web_config_path,
            WEB_CONFIG,
        )
        self._hosting.publish_file(
            site,
            credentials,
            details.http_resource_path,
            details.http_resource_value,
        )
        log.info(
            "Published HTTP-01 resource for %s on %s",
            authorization.identifier,
            site.display_name,
        )

        return ChallengeResult(
            url=challenge.url,
            domain=authorization.identifier,
            http_resource_url=details.http_resource_url,
            http_resource_value=details.http_resource_value,
        )

    def verify(self, result: ChallengeResult) -> None:
        """Fetch the resource and compare it with the expected value.

        Unreachable or non-2xx is retryable (deployment may lag).  A
        body that differs is fatal: retrying will not change it.
        """
        url = result.http_resource_url
        timeout = self._settings.timeout_seconds
        log.debug("HTTP-01 check: fetching %s", url)

        try:
            req = urllib.request.Request(url, method="GET")
            resp = _insecure_opener().open(req, timeout=timeout)
        except urllib.error.HTTPError as exc:
            msg = f"HTTP-01 check failed for {result.domain}: server returned HTTP {exc.code} for {url}"
            raise ChallengeError(msg, retryable=True) from exc
        except (urllib.error.URLError, OSError) as exc:
            msg = f"HTTP-01 check failed for {result.domain}: could not fetch {url}: {exc}"
            raise ChallengeError(msg, retryable=True) from exc

        # redirects are followed; an error status surfaces as HTTPError above
        with resp:
            try:
                body = resp.read(self._settings.max_response_bytes)
            except OSError as exc:
                msg = f"HTTP-01 check failed for {result.domain}: error reading {url}: {exc}"
                raise ChallengeError(msg, retryable=True) from exc

        body_text = body.decode("utf-8", errors="replace").strip()
        expected = result.http_resource_value or ""
        if not secrets.compare_digest(body_text.encode(), expected.encode()):
            msg = (
                f"HTTP-01 check failed for {result.domain}: content of {url} "
                "does not match the key authorization"
            )
            raise ChallengeError(msg, retryable=False)

        log.info("HTTP-01 resource verified for %s", result.domain)
