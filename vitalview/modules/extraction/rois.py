from vitalview.modules.extraction.models import ROI

# Layout of the bedside monitor the cameras are pointed at. Clients may send their own.
DEFAULT_MONITOR_ROIS: tuple[ROI, ...] = (
    ROI(label="HR", x=0.72, y=0.08, width=0.18, height=0.12, unit="bpm"),
    ROI(label="Pulse", x=0.72, y=0.22, width=0.18, height=0.10, unit="bpm"),
    ROI(label="SpO2", x=0.72, y=0.34, width=0.18, height=0.10, unit="%"),
    ROI(label="ABP", x=0.60, y=0.46, width=0.30, height=0.10, unit="mmHg"),
    ROI(label="PAP", x=0.60, y=0.58, width=0.30, height=0.10, unit="mmHg"),
    ROI(label="EtCO2", x=0.72, y=0.70, width=0.18, height=0.10, unit="mmHg"),
    ROI(label="awRR", x=0.72, y=0.82, width=0.18, height=0.10, unit="rpm"),
)
