#!/usr/bin/env python3
"""
Tests for URL safety checks on submitted crawl targets.
"""

import socket

import pytest
from unittest.mock import patch

from sitegenie.pipelines.security import (
    UnsafeURLError,
    check_url_safe,
    is_private_ip,
)


class TestURLSafety:
    """Test suite for crawl target validation"""

    @pytest.mark.parametrize("url", [
        "http://127.0.0.1/test",
        "http://10.0.0.1/test",
        "http://172.16.0.1/test",
        "http://192.168.1.1/test",
        "http://169.254.169.254/latest/meta-data",
        "http://[::1]/test",
        "http://[fc00::1]/test",
    ])
    def test_private_ip_literals_blocked(self, url):
        with pytest.raises(UnsafeURLError, match="Private IP"):
            check_url_safe(url, resolve_dns=False)

    @pytest.mark.parametrize("url", [
        "file:///etc/passwd",
        "ftp://example.com/file.txt",
        "gopher://example.com",
        "javascript:alert(1)",
    ])
    def test_non_http_schemes_blocked(self, url):
        with pytest.raises(UnsafeURLError, match="not allowed"):
            check_url_safe(url, resolve_dns=False)

    def test_localhost_blocked(self):
        with pytest.raises(UnsafeURLError, match="Localhost"):
            check_url_safe("http://localhost:8000/admin", resolve_dns=False)

    @pytest.mark.parametrize("port", [22, 5432, 6379])
    def test_internal_service_ports_blocked(self, port):
        with pytest.raises(UnsafeURLError, match="blocked"):
            check_url_safe(f"http://example.com:{port}/", resolve_dns=False)

    def test_missing_hostname(self):
        with pytest.raises(UnsafeURLError, match="hostname"):
            check_url_safe("http:///path", resolve_dns=False)

    def test_malformed_port_blocked(self):
        with pytest.raises(UnsafeURLError, match="Malformed URL"):
            check_url_safe("http://example.com:99999/", resolve_dns=False)

    def test_public_urls_allowed(self):
        check_url_safe("https://example.com/docs", resolve_dns=False)
        check_url_safe("http://93.184.216.34/", resolve_dns=False)

    def test_hostname_resolving_to_private_ip_blocked(self):
        addr_info = [(socket.AF_INET, socket.SOCK_STREAM, 6, '', ('10.1.2.3', 0))]
        with patch('sitegenie.pipelines.security.socket.getaddrinfo', return_value=addr_info):
            with pytest.raises(UnsafeURLError, match="private IP"):
                check_url_safe("https://internal.example.com/")

    def test_unresolvable_hostname_blocked(self):
        with patch('sitegenie.pipelines.security.socket.getaddrinfo', side_effect=socket.gaierror("no such host")):
            with pytest.raises(UnsafeURLError, match="Failed to resolve"):
                check_url_safe("https://nowhere.invalid/")

    def test_hostname_resolving_to_public_ip_allowed(self):
        addr_info = [(socket.AF_INET, socket.SOCK_STREAM, 6, '', ('93.184.216.34', 0))]
        with patch('sitegenie.pipelines.security.socket.getaddrinfo', return_value=addr_info):
            check_url_safe("https://example.com/")

    def test_is_private_ip(self):
        assert is_private_ip("192.168.0.10")
        assert is_private_ip("not-an-ip")
        assert not is_private_ip("8.8.8.8")
