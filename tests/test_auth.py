import unittest

from flask import Flask

from web.auth import parse_iap_email, require_identity


class AuthTests(unittest.TestCase):
    def test_parse_iap_email_with_provider_prefix(self):
        self.assertEqual(
            parse_iap_email("accounts.google.com:Person@Example.com"),
            "person@example.com",
        )

    def test_parse_iap_email_plain_value(self):
        self.assertEqual(parse_iap_email("person@example.com"), "person@example.com")
        self.assertIsNone(parse_iap_email(""))

    def test_require_identity_prefers_iap_header(self):
        app = Flask(__name__)
        app.config["DEV_AUTH_EMAIL"] = "dev@localhost"
        headers = {"X-Goog-Authenticated-User-Email": "accounts.google.com:jane.doe@example.com"}
        with app.test_request_context("/", headers=headers):
            identity = require_identity()
        self.assertEqual(identity.email, "jane.doe@example.com")
        self.assertEqual(identity.display_name, "Jane Doe")

    def test_require_identity_without_any_email_is_401(self):
        app = Flask(__name__)
        app.config["DEV_AUTH_EMAIL"] = ""
        with app.test_request_context("/"):
            with self.assertRaises(Exception) as ctx:
                require_identity()
        self.assertEqual(getattr(ctx.exception, "code", None), 401)


if __name__ == "__main__":
    unittest.main()
