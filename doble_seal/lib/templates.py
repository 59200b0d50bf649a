"""Text templates written next to issued certificates."""

from collections.abc import Sequence
from datetime import datetime, timedelta
from pathlib import Path

NGINX_TEMPLATE = """\
# SSL configuration for {domain}
server {{
    listen 443 ssl;
    listen [::]:443 ssl;
    http2 on;
    server_name {domain};

    ssl_certificate {certificate};
    ssl_certificate_key {private_key};

    ssl_protocols TLSv1.2 TLSv1.3;
    ssl_ciphers ECDHE-RSA-AES128-GCM-SHA256:ECDHE-RSA-AES256-GCM-SHA384;
    ssl_prefer_server_ciphers off;
    ssl_session_cache shared:SSL:10m;
    ssl_session_timeout 10m;

    location / {{
        proxy_pass http://127.0.0.1:3000;
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
    }}
}}

# Redirect HTTP to HTTPS
server {{
    listen 80;
    listen [::]:80;
    server_name {domain};
    return 301 https://$server_name$request_uri;
}}
"""

README_TEMPLATE = """\
# TLS certificate for {domain}

## Certificate

- **Primary domain**: {domain}
- **Alternative names (SAN)**: {sans_text}
- **Created**: {created}
- **Duration**: {duration} days
- **Expires**: {expires}
- **Key**: RSA 2048 bits
- **Signed by**: {ca_name}

## Files

- `certificate.pem`: public certificate.
- `private-key.pem`: private key. Keep it secret.
- `fullchain.pem`: full chain (currently identical to `certificate.pem`).

## nginx

```nginx
server {{
    listen 443 ssl;
    server_name {server_names};

    ssl_certificate {certificate};
    ssl_certificate_key {private_key};
}}
```

## Apache

```apache
<VirtualHost *:443>
    ServerName {domain}
{apache_aliases}
    SSLEngine on
    SSLCertificateFile {certificate}
    SSLCertificateKeyFile {private_key}
</VirtualHost>
```

## Hosts file

```
127.0.0.1 {server_names}
```

## Verify

```bash
openssl x509 -in {certificate} -text -noout
curl -v https://{domain}
```
"""


def render_nginx_config(domain: str, certificate: Path, private_key: Path) -> str:
    return NGINX_TEMPLATE.format(domain=domain, certificate=certificate, private_key=private_key)


def render_readme(
    domain: str,
    sans: Sequence[str],
    duration_days: int,
    created: datetime,
    certificate: Path,
    private_key: Path,
    ca_name: str,
) -> str:
    """Render the setup notes written as README.md in the domain directory."""
    return README_TEMPLATE.format(
        domain=domain,
        sans_text=", ".join(sans) if sans else "none",
        created=created.strftime("%Y-%m-%d %H:%M UTC"),
        duration=duration_days,
        expires=(created + timedelta(days=duration_days)).strftime("%Y-%m-%d %H:%M UTC"),
        ca_name=ca_name,
        server_names=" ".join([domain, *sans]),
        apache_aliases="".join(f"    ServerAlias {san}\n" for san in sans),
        certificate=certificate,
        private_key=private_key,
    )
