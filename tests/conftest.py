"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages,
and provides small on-disk Delphi projects for resolver and scan tests.
"""

import sys
from pathlib import Path

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local delphiscan package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of delphiscan modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("delphiscan"):
        del sys.modules[module_name]


ORDERS_UNIT = """\
unit Orders.Data;

interface

uses
  SysUtils, Classes, DB;

type
  TOrderRepository = class(TObject)
  public
    procedure DeleteOrder(OrderId: Integer);
    function CountOrders: Integer;
  end;

implementation

uses
  Helpers;

procedure TOrderRepository.DeleteOrder(OrderId: Integer);
begin
  Q.SQL.Text := 'DELETE FROM Orders WHERE Id = ' + IntToStr(OrderId) + ';';
  Q.ExecSQL;
end;

function TOrderRepository.CountOrders: Integer;
begin
  Q.SQL.Clear;
  Q.SQL.Add('SELECT COUNT(*) AS Total');
  Q.SQL.Add('FROM Orders');
  Q.Open;
  Result := Q.FieldByName('Total').AsInteger;
end;

end.
"""

HELPERS_UNIT = """\
unit Helpers;

interface

function Twice(X: Integer): Integer;

implementation

function Twice(X: Integer): Integer;
begin
  Result := X * 2;
end;

end.
"""

MAIN_FORM_UNIT = """\
unit MainForm;

interface

uses
  Forms, Orders.Data;

type
  TfrmMain = class(TForm)
    procedure FormShow(Sender: TObject);
  end;

var
  frmMain: TfrmMain;

implementation

{$R *.dfm}

procedure TfrmMain.FormShow(Sender: TObject);
begin
  Caption := 'Orders';
end;

end.
"""

MAIN_FORM_DFM = """\
object frmMain: TfrmMain
  Left = 0
  Top = 0
  Caption = 'Orders'
  object btnRefresh: TButton
    Left = 8
  end
  object grdOrders: TDBGrid
    Left = 8
  end
end
"""

BILLING_DPR = """\
program Billing;

uses
  Forms,
  SysUtils,
  MainForm in 'src\\MainForm.pas' {frmMain},
  Orders.Data in 'src\\Orders.Data.pas',
  Helpers;

{$R *.res}

begin
  Application.Initialize;
  Application.CreateForm(TfrmMain, frmMain);
  Application.Run;
end.
"""

BILLING_DPROJ = """\
<Project xmlns="http://schemas.microsoft.com/developer/msbuild/2003">
    <PropertyGroup>
        <ProjectGuid>{5D1B3B0E-1111-4C2A-9C33-000000000001}</ProjectGuid>
        <MainSource>Billing.dpr</MainSource>
        <Config Condition="'$(Config)'==''">Debug</Config>
        <Platform Condition="'$(Platform)'==''">Win32</Platform>
        <FrameworkType>VCL</FrameworkType>
        <ProjectVersion>19.5</ProjectVersion>
    </PropertyGroup>
    <PropertyGroup Condition="'$(Base)'!=''">
        <DCC_Define>LEGACY;$(DCC_Define)</DCC_Define>
        <DCC_UnitSearchPath>lib;$(DCC_UnitSearchPath)</DCC_UnitSearchPath>
        <DCC_Namespace>System;Vcl;Data;$(DCC_Namespace)</DCC_Namespace>
        <VerInfo_MajorVer>2</VerInfo_MajorVer>
        <VerInfo_Keys>CompanyName=Acme;FileDescription=Billing;ProductName=Billing Suite</VerInfo_Keys>
    </PropertyGroup>
    <PropertyGroup Condition="'$(Cfg_1)'!=''">
        <DCC_Define>TRACE;$(DCC_Define)</DCC_Define>
    </PropertyGroup>
    <PropertyGroup Condition="'$(Cfg_2)'!=''">
        <DCC_Define>SHIP;$(DCC_Define)</DCC_Define>
    </PropertyGroup>
    <ItemGroup>
        <DelphiCompile Include="$(MainSource)">
            <MainSource>MainSource</MainSource>
        </DelphiCompile>
        <DCCReference Include="src\\MainForm.pas">
            <Form>frmMain</Form>
        </DCCReference>
        <DCCReference Include="src\\Orders.Data.pas"/>
        <DCCReference Include="src\\Reports.pas"/>
        <DCCReference Include="src\\Gone.pas"/>
        <BuildConfiguration Include="Debug">
            <Key>Cfg_1</Key>
        </BuildConfiguration>
        <BuildConfiguration Include="Release">
            <Key>Cfg_2</Key>
        </BuildConfiguration>
    </ItemGroup>
</Project>
"""

REPORTS_UNIT = """\
unit Reports;

interface

implementation

procedure PrintAll;
begin
  Q.SQL.Text := 'SELECT * FROM Reports';
end;

end.
"""


@pytest.fixture
def billing_project(tmp_path: Path) -> Path:
    """A small VCL project: .dpr, .dproj, three units, one form, one library unit."""
    root = tmp_path / "billing"
    (root / "src").mkdir(parents=True)
    (root / "lib").mkdir()
    (root / "Billing.dpr").write_text(BILLING_DPR)
    (root / "Billing.dproj").write_text(BILLING_DPROJ)
    (root / "src" / "MainForm.pas").write_text(MAIN_FORM_UNIT)
    (root / "src" / "MainForm.dfm").write_text(MAIN_FORM_DFM)
    (root / "src" / "Orders.Data.pas").write_text(ORDERS_UNIT)
    (root / "src" / "Reports.pas").write_text(REPORTS_UNIT)
    (root / "lib" / "Helpers.pas").write_text(HELPERS_UNIT)
    return root
