"""QR service: styled QR rendering, order assets and the QR REST API."""
