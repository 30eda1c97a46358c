import logging
import unittest

import numpy as np

from .datamodel import AttributeMatrix, DataArray, DataArrayPath, GridMontage
from .messages import FilterCallbacks
from .testutil import STACK_CONTAINER, STACK_MATRIX, image_stack_dca


class DataModelTest(unittest.TestCase):
    def test_views_share_memory(self) -> None:
        array = DataArray("Rgb", np.zeros((4, 3), dtype=np.uint8))
        self.assertEqual(array.number_of_tuples, 4)
        self.assertEqual(array.number_of_components, 3)
        array.component_view(1)[:] = 7
        np.testing.assert_array_equal(array.data[:, 1], [7, 7, 7, 7])
        self.assertTrue(np.shares_memory(array.tuple_view(), array.data))

    def test_path_lookups(self) -> None:
        dca, path = image_stack_dca([np.zeros((2, 3), dtype=np.uint8)])
        self.assertEqual(dca.get_attribute_matrix(path).number_of_tuples, 6)
        array = dca.get_data_array(DataArrayPath(STACK_CONTAINER, STACK_MATRIX, "Image_0"))
        self.assertEqual(array.number_of_tuples, 6)
        self.assertIsNone(dca.get_data_array(DataArrayPath("Missing", STACK_MATRIX, "Image_0")))
        self.assertIsNone(dca.get_data_array(DataArrayPath(STACK_CONTAINER, STACK_MATRIX, "Nope")))

    def test_resize_reallocates_only_mismatched_arrays(self) -> None:
        am = AttributeMatrix("CellData", (2, 2, 1))
        kept = DataArray("Kept", np.arange(6, dtype=np.uint8))
        am.add_attribute_array(DataArray("Small", np.ones(4, dtype=np.uint16)))
        am.add_attribute_array(kept)
        am.resize_attribute_arrays((3, 2, 1))
        self.assertIs(am.get_attribute_array("Kept"), kept)
        resized = am.get_attribute_array("Small")
        self.assertEqual(resized.number_of_tuples, 6)
        self.assertEqual(resized.dtype, np.uint16)

    def test_grid_montage_indexing(self) -> None:
        montage = GridMontage(2, 3)
        self.assertEqual(montage.get_tile_index(1, 2), (1, 2))
        with self.assertRaises(IndexError):
            montage.get_tile_index(2, 0)
        with self.assertRaises(KeyError):
            montage.get_data_container((0, 0))


class FilterCallbacksTest(unittest.TestCase):
    def test_no_op(self) -> None:
        callbacks = FilterCallbacks.no_op()
        callbacks.status("ignored")
        callbacks.error(-1, "ignored")
        callbacks.warning(-1, "ignored")
        callbacks.progress(1, 2)

    def test_logged(self) -> None:
        logger = logging.getLogger("montage_filters.test")
        callbacks = FilterCallbacks.logged(logger, "Calculate Background")
        with self.assertLogs(logger, level="INFO") as logs:
            callbacks.status("Complete")
            callbacks.warning(-76100, "some pixels had no samples")
        self.assertEqual(
            logs.output,
            [
                "INFO:montage_filters.test:Calculate Background: Complete",
                "WARNING:montage_filters.test:Calculate Background: some pixels had no samples (-76100)",
            ],
        )


if __name__ == "__main__":
    unittest.main()
