import io
import unittest

from productscraper.log import ScrapeLogger
from productscraper.models import RawProductData
from productscraper.validator import (
    REQUIRED_FIELDS,
    calculate_completeness_score,
    transform_to_metadata,
    transform_to_product,
    validate_metadata,
    validate_product,
)


def smart_blender(**overrides) -> RawProductData:
    data = dict(
        title="Smart Blender",
        image_url="https://cdn.x.com/a.jpg",
        supplier_price="$12.50",
        retail_price="$34.99",
    )
    data.update(overrides)
    return RawProductData(**data)


class TestTransform(unittest.TestCase):
    def test_prices_and_profit(self):
        product = transform_to_product(smart_blender())
        self.assertEqual(product["buy_price"], 12.5)
        self.assertEqual(product["sell_price"], 34.99)
        self.assertEqual(product["profit_per_order"], 22.49)

    def test_profit_zero_when_a_price_is_missing(self):
        product = transform_to_product(smart_blender(retail_price=None))
        self.assertEqual(product["profit_per_order"], 0)
        self.assertEqual(product["sell_price"], 0)

    def test_text_and_url_cleanup(self):
        product = transform_to_product(
            smart_blender(
                title="  Smart Blender  ",
                description="   ",
                image_url="//cdn.example.com/blender.jpg",
                additional_images=["https://cdn.example.com/1.jpg", "not-a-url"],
            )
        )
        self.assertEqual(product["title"], "Smart Blender")
        self.assertIsNone(product["description"])
        self.assertEqual(product["image"], "https://cdn.example.com/blender.jpg")
        self.assertEqual(product["additional_images"], ["https://cdn.example.com/1.jpg"])
        self.assertEqual(product["reviews_count"], 0)

    def test_metadata(self):
        metadata = transform_to_metadata(
            smart_blender(is_winning=None, items_sold="1.2k", profit_margin="$22.49", found_date="3/14/2024")
        )
        self.assertIs(metadata["is_winning"], False)
        self.assertEqual(metadata["items_sold"], 1200)
        self.assertEqual(metadata["profit_margin"], 22.49)
        self.assertEqual(metadata["found_date"], "3/14/2024")


class TestCompletenessScore(unittest.TestCase):
    def test_required_fields_alone_score_sixty(self):
        product = {
            "title": "Lamp",
            "image": "https://cdn.example.com/lamp.jpg",
            "buy_price": 10,
            "sell_price": 10,
            "profit_per_order": 0,
            "additional_images": [],
        }
        self.assertEqual(calculate_completeness_score(product), 60)

    def test_empty_and_full(self):
        self.assertEqual(calculate_completeness_score({}), 0)
        full = {
            "title": "Lamp",
            "image": "https://cdn.example.com/lamp.jpg",
            "buy_price": 10,
            "sell_price": 20,
            "description": "A lamp",
            "profit_per_order": 10,
            "category_id": "c",
            "additional_images": ["https://cdn.example.com/1.jpg"],
            "specifications": {"Color": "White"},
            "rating": 4.5,
            "reviews_count": 12,
            "trend_data": [1.0],
            "supplier_id": "s",
        }
        self.assertEqual(calculate_completeness_score(full), 100)

    def test_score_is_bounded(self):
        score = calculate_completeness_score(transform_to_product(smart_blender()))
        self.assertGreaterEqual(score, 0)
        self.assertLessEqual(score, 100)


class TestValidateProduct(unittest.TestCase):
    def test_minimal_product_is_valid(self):
        result = validate_product(smart_blender())
        self.assertTrue(result.is_valid)
        self.assertTrue(result.required_fields_complete)
        self.assertEqual(result.missing_fields, [])
        self.assertEqual(result.invalid_fields, [])
        self.assertGreaterEqual(result.completeness_score, 60)
        self.assertIsNotNone(result.transformed_product)
        self.assertEqual(result.transformed_product["profit_per_order"], 22.49)
        self.assertIsNotNone(result.transformed_metadata)

    def test_optional_gaps_only_warn(self):
        result = validate_product(smart_blender())
        self.assertIn("Missing description - product may lack important details", result.warnings)
        self.assertIn("No additional images - consider adding gallery images", result.warnings)
        self.assertIn("No specifications - product details may be incomplete", result.warnings)
        self.assertIn("No trend data available", result.warnings)
        self.assertTrue(result.is_valid)

    def test_no_warnings_when_optional_fields_present(self):
        result = validate_product(
            smart_blender(
                description="Blends anything.",
                additional_images=["https://cdn.example.com/1.jpg"],
                specifications={"Capacity": "400ml"},
                trend_data=[1.0, 2.0],
            )
        )
        self.assertEqual(result.warnings, [])

    def test_each_required_field_is_strict(self):
        cases = {
            "title": smart_blender(title="   "),
            "image": smart_blender(image_url="not a url"),
            "buy_price": smart_blender(supplier_price="$0"),
            "sell_price": smart_blender(retail_price=None),
        }
        for name, raw in cases.items():
            with self.subTest(field=name):
                result = validate_product(raw)
                self.assertFalse(result.required_fields_complete)
                self.assertFalse(result.is_valid)
                self.assertIn(name, result.missing_fields)
                self.assertIsNone(result.transformed_product)

    def test_negative_price_is_missing_and_invalid(self):
        result = validate_product(smart_blender(supplier_price=-5))
        self.assertIn("buy_price", result.missing_fields)
        self.assertIn("Buy price must be positive", [f.error for f in result.invalid_fields])
        self.assertFalse(result.is_valid)

    def test_empty_extraction(self):
        result = validate_product(RawProductData())
        self.assertFalse(result.is_valid)
        for name in REQUIRED_FIELDS:
            self.assertIn(name, result.missing_fields)
        self.assertEqual(len(result.missing_fields), len(set(result.missing_fields)))

    def test_is_deterministic(self):
        raw = smart_blender(title="", rating="4.5/5")
        self.assertEqual(validate_product(raw).to_dict(), validate_product(raw).to_dict())


class TestValidateMetadata(unittest.TestCase):
    def test_metadata_always_valid(self):
        result = validate_metadata(RawProductData())
        self.assertTrue(result.is_valid)
        self.assertEqual(result.transformed_metadata["filters"], [])


class TestReportValidation(unittest.TestCase):
    def test_report_lists_missing_fields(self):
        from productscraper.validator import report_validation

        stream = io.StringIO()
        log = ScrapeLogger(name="test.validator.report", stream=stream)
        report_validation(validate_product(smart_blender(title="")), log)

        output = stream.getvalue()
        self.assertIn("VALIDATION REPORT", output)
        self.assertIn("Required Fields: INCOMPLETE", output)
        self.assertIn("Overall Status: INVALID", output)
        self.assertIn("title", output)
