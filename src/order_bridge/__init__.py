"""Order Bridge — chat storefront to ERP order intake and notifications."""
