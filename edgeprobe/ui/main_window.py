"""Main window for the edgeprobe desktop shell."""

import logging

from PySide6.QtCore import Qt, QThreadPool
from PySide6.QtGui import QCloseEvent, QGuiApplication
from PySide6.QtWidgets import (
    QAbstractItemView,
    QFrame,
    QGroupBox,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QMainWindow,
    QProgressBar,
    QPushButton,
    QTableView,
    QVBoxLayout,
    QWidget,
)

from edgeprobe.config import ProbeConfig
from edgeprobe.fake_prober import FakeProber
from edgeprobe.scheduler import ProbeScheduler
from edgeprobe.ui.result_model import RankedResultModel
from edgeprobe.workers import ProbeRunWorker

logger = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    """Main application window."""

    def __init__(
        self,
        scheduler: ProbeScheduler | None = None,
        candidates: list[str] | None = None,
        config: ProbeConfig | None = None,
    ):
        super().__init__()
        self.setWindowTitle("EdgeProbe")
        self.setGeometry(100, 100, 900, 600)

        if scheduler is None:
            config = config if config is not None else ProbeConfig()
            scheduler = ProbeScheduler(FakeProber(timeout_ms=config.timeout_ms), config)
        self.scheduler = scheduler
        self.candidates = list(candidates) if candidates is not None else list(
            scheduler.config.candidates
        )

        # Run state
        self.is_probing = False
        self._current_worker: ProbeRunWorker | None = None
        self.thread_pool = QThreadPool.globalInstance()

        self.model = RankedResultModel()

        self.setup_ui()

    def closeEvent(self, event: QCloseEvent) -> None:
        """Handle application close event - detach any running probe pass."""
        self._disconnect_worker()
        self.thread_pool.waitForDone(1000)
        super().closeEvent(event)

    def setup_ui(self):
        """Set up the main user interface."""
        central_widget = QWidget()
        self.setCentralWidget(central_widget)

        main_layout = QHBoxLayout(central_widget)
        main_layout.addWidget(self.create_control_panel(), 0)
        main_layout.addWidget(self.create_result_area(), 1)

    def create_control_panel(self):
        """Create the left control panel."""
        panel = QFrame()
        panel.setFrameStyle(QFrame.Box)
        panel.setFixedWidth(250)

        layout = QVBoxLayout(panel)

        title = QLabel("Edge IP Optimizer")
        title.setAlignment(Qt.AlignCenter)
        title.setStyleSheet("font-weight: bold; font-size: 14px; margin: 10px;")
        layout.addWidget(title)

        controls_group = QGroupBox("Controls")
        controls_layout = QVBoxLayout(controls_group)

        self.start_button = QPushButton("Start Probing")
        self.start_button.clicked.connect(self.start_probing)
        controls_layout.addWidget(self.start_button)

        self.copy_button = QPushButton("Copy Address")
        self.copy_button.clicked.connect(self.copy_selected_address)
        self.copy_button.setEnabled(False)
        controls_layout.addWidget(self.copy_button)

        layout.addWidget(controls_group)

        progress_group = QGroupBox("Progress")
        progress_layout = QVBoxLayout(progress_group)

        self.progress_bar = QProgressBar()
        self.progress_bar.setRange(0, 100)
        self.progress_bar.setValue(0)
        progress_layout.addWidget(self.progress_bar)

        self.current_label = QLabel("Candidate: --")
        self.current_label.setStyleSheet("padding: 5px; font-family: monospace;")
        progress_layout.addWidget(self.current_label)

        self.pool_label = QLabel(f"Pool: {len(self.candidates)} addresses")
        self.pool_label.setStyleSheet("padding: 5px; font-family: monospace;")
        progress_layout.addWidget(self.pool_label)

        layout.addWidget(progress_group)
        layout.addStretch()

        self.status_label = QLabel("Status: Ready")
        self.status_label.setAlignment(Qt.AlignCenter)
        self.status_label.setStyleSheet("font-weight: bold;")
        self.status_label.setWordWrap(True)
        layout.addWidget(self.status_label)

        return panel

    def create_result_area(self):
        """Create the right area with the ranked result table."""
        area = QFrame()
        area.setFrameStyle(QFrame.Box)

        layout = QVBoxLayout(area)

        title = QLabel("Ranked Addresses")
        title.setAlignment(Qt.AlignCenter)
        title.setStyleSheet("font-weight: bold; font-size: 14px; margin: 10px;")
        layout.addWidget(title)

        self.table = QTableView()
        self.table.setModel(self.model)
        self.table.setAlternatingRowColors(True)
        self.table.setSelectionBehavior(QAbstractItemView.SelectRows)
        self.table.setSelectionMode(QAbstractItemView.SingleSelection)
        self.table.verticalHeader().setVisible(False)

        header = self.table.horizontalHeader()
        for col in range(self.model.columnCount() - 1):
            header.setSectionResizeMode(col, QHeaderView.ResizeToContents)
        header.setSectionResizeMode(self.model.columnCount() - 1, QHeaderView.Stretch)

        self.table.selectionModel().selectionChanged.connect(self.on_selection_changed)

        layout.addWidget(self.table)

        return area

    def start_probing(self):
        """Handle start button click."""
        if self.is_probing:
            return

        self.is_probing = True
        self.start_button.setEnabled(False)
        self.progress_bar.setValue(0)
        self.current_label.setText("Candidate: --")
        self.status_label.setText("Status: Probing")

        worker = ProbeRunWorker(self.scheduler, self.candidates)
        worker.signals.progress.connect(self.on_progress)
        worker.signals.finished.connect(self.on_run_finished)
        worker.signals.error.connect(self.on_run_error)
        self._current_worker = worker

        self.thread_pool.start(worker)

    def on_progress(self, address: str, percent: int):
        """Handle progress from the background run."""
        self.progress_bar.setValue(percent)
        self.current_label.setText(f"Candidate: {address}")

    def on_run_finished(self, ranked):
        """Show the ranked list once the run completes."""
        self.model.set_results(ranked)
        self.progress_bar.setValue(100)

        if ranked:
            best = ranked[0]
            self.status_label.setText(
                f"Status: Best {best.address} ({best.average_latency_ms} ms)"
            )
        else:
            self.status_label.setText("Status: No usable candidate found")

        self._finish_run()

    def on_run_error(self, error_msg: str):
        """Handle a run-level failure."""
        logger.error("Probe run error: %s", error_msg)
        self.status_label.setText(f"Status: Probe failed - {error_msg}")
        self._finish_run()

    def on_selection_changed(self, *_):
        self.copy_button.setEnabled(self.selected_result() is not None)

    def selected_result(self):
        """Return the CandidateResult of the selected row, if any."""
        rows = self.table.selectionModel().selectedRows()
        if not rows:
            return None
        return self.model.result_at(rows[0].row())

    def copy_selected_address(self):
        """Copy the selected address to the clipboard."""
        result = self.selected_result()
        if result is None:
            self.status_label.setText("Status: Select an address first")
            return

        QGuiApplication.clipboard().setText(result.address)
        self.status_label.setText(f"Status: Copied {result.address}")

    def _finish_run(self):
        self._disconnect_worker()
        self.is_probing = False
        self.start_button.setEnabled(True)

    def _disconnect_worker(self):
        if self._current_worker is None:
            return
        try:
            self._current_worker.signals.progress.disconnect()
            self._current_worker.signals.finished.disconnect()
            self._current_worker.signals.error.disconnect()
        except RuntimeError:
            pass  # Already disconnected
        self._current_worker = None
